"""Library for synchronizing a git working directory to an exact reference.

A sync either clones the repository into an empty working directory or, when
a `.git` directory is already present, updates the existing checkout in place.
The update path only talks to the remote when the requested reference is not
already resolvable locally, so re-running a build against an unchanged pin
is cheap and does not need the network:
```python
from buildfetch.git import GitSync

sync = GitSync(config, executor)
await sync.sync("acme", "libfoo", "abc123", Path("deps/libfoo"))
```

A sparse, blobless clone is used on first clone when running in CI with a
git that supports `sparse-checkout` and the caller asked for specific paths.
An existing checkout is never converted between sparse and full.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import StrEnum
import logging
from pathlib import Path

from aiofiles.os import makedirs
from aiofiles.ospath import exists

from . import command
from .config import BuildEnvironment
from .context import trace_context
from .exceptions import CommandException, InvalidArgumentsError, SyncError
from .version import GIT_BIN, SPARSE_CHECKOUT_VERSION

__all__ = [
    "GitSync",
    "Repository",
    "SyncStep",
    "use_sparse_checkout",
]

_LOGGER = logging.getLogger(__name__)

DEFAULT_FETCH_REFSPEC = "+refs/heads/*:refs/remotes/origin/*"
SUBMODULE_MANIFEST = ".gitmodules"


class SyncStep(StrEnum):
    """The stage of a sync, used to identify failures."""

    CLONE = "clone"
    SPARSE_CHECKOUT = "sparse-checkout"
    REMOTE_CONFIG = "remote-config"
    FETCH = "fetch"
    CHECKOUT = "checkout"
    RESET = "reset"
    SUBMODULE_UPDATE = "submodule-update"


@dataclass(frozen=True, kw_only=True)
class Repository:
    """A git repository tracked as a single dependency."""

    owner: str
    """Owner or organization of the repository on the remote host."""

    name: str
    """Name of the repository."""

    ref: str
    """Branch, tag or commit to check out."""

    sparse_paths: tuple[str, ...] = field(default_factory=tuple)
    """Paths to materialize when a sparse checkout is used."""

    @property
    def full_name(self) -> str:
        """Return the owner/name identifier of the repository."""
        return f"{self.owner}/{self.name}"

    def url(self, remote_base: str) -> str:
        """Return the clone url relative to the remote base url."""
        return f"{remote_base.rstrip('/')}/{self.owner}/{self.name}.git"

    def __str__(self) -> str:
        return f"{self.full_name}@{self.ref}"


def use_sparse_checkout(
    config: BuildEnvironment, sparse_paths: Sequence[str] | None
) -> bool:
    """Return True if a first clone should be blobless and sparse.

    All of CI context, a git new enough to support `sparse-checkout`, and a
    non-empty set of paths are required.
    """
    return (
        config.ci
        and config.git_version is not None
        and config.git_version >= SPARSE_CHECKOUT_VERSION
        and bool(sparse_paths)
    )


class GitSync:
    """Brings a working directory to an exact state of a remote repository."""

    def __init__(self, config: BuildEnvironment, executor: command.Executor) -> None:
        """Initialize GitSync."""
        self._config = config
        self._executor = executor

    async def sync(
        self,
        owner: str,
        repo: str,
        ref: str,
        workdir: Path,
        sparse_paths: Sequence[str] | None = None,
    ) -> None:
        """Clone or update the repository in `workdir` and check out `ref`.

        Local modifications in an existing checkout are discarded.
        """
        if not owner or not repo or not ref:
            raise InvalidArgumentsError(
                f"An owner, repository and ref are required (owner={owner!r}, "
                f"repo={repo!r}, ref={ref!r})"
            )
        repository = Repository(
            owner=owner, name=repo, ref=ref, sparse_paths=tuple(sparse_paths or ())
        )
        # Commands run inside workdir, so paths given to them must not be relative
        workdir = workdir.absolute()
        with trace_context("sync", str(repository)):
            if await exists(workdir / ".git"):
                _LOGGER.info(
                    "Repository %s already exists, updating...", repository.full_name
                )
                await self._update(repository, workdir)
            else:
                await self._clone(repository, workdir)
            if await exists(workdir / SUBMODULE_MANIFEST):
                await self._update_submodules(repository, workdir)
            _LOGGER.info("Repository %s synced", repository)

    async def _update(self, repository: Repository, workdir: Path) -> None:
        """Update an existing checkout in place."""
        for key, value in (
            ("advice.detachedHead", "false"),
            ("remote.origin.url", repository.url(self._config.git_remote_base)),
            ("remote.origin.fetch", DEFAULT_FETCH_REFSPEC),
            ("remote.origin.tagOpt", "--no-tags"),
        ):
            await self._git(
                repository, SyncStep.REMOTE_CONFIG, workdir, "config", key, value
            )
        if await self._has_commit(repository, workdir):
            _LOGGER.debug("%s already present, skipping fetch", repository)
        else:
            await self._git(
                repository,
                SyncStep.FETCH,
                workdir,
                "fetch",
                "origin",
                timeout=self._config.network_timeout,
            )
        # A blobless checkout downloads missing blobs on checkout and reset
        await self._git(
            repository,
            SyncStep.CHECKOUT,
            workdir,
            "checkout",
            "-f",
            repository.ref,
            "--",
            timeout=self._config.network_timeout,
        )
        await self._git(
            repository,
            SyncStep.RESET,
            workdir,
            "reset",
            "--hard",
            repository.ref,
            "--",
            timeout=self._config.network_timeout,
        )

    async def _clone(self, repository: Repository, workdir: Path) -> None:
        """Clone into an empty working directory and check out the ref."""
        await makedirs(workdir, exist_ok=True)
        url = repository.url(self._config.git_remote_base)
        if use_sparse_checkout(self._config, repository.sparse_paths):
            _LOGGER.info(
                "Cloning %s with sparse checkout of %s",
                repository.full_name,
                ", ".join(repository.sparse_paths),
            )
            await self._git(
                repository,
                SyncStep.CLONE,
                workdir,
                "clone",
                "--filter=blob:none",
                "--no-checkout",
                url,
                str(workdir),
                timeout=self._config.network_timeout,
            )
            await self._git(
                repository,
                SyncStep.SPARSE_CHECKOUT,
                workdir,
                "sparse-checkout",
                "set",
                *repository.sparse_paths,
                timeout=self._config.network_timeout,
            )
        else:
            _LOGGER.info("Cloning %s", repository.full_name)
            await self._git(
                repository,
                SyncStep.CLONE,
                workdir,
                "clone",
                url,
                str(workdir),
                timeout=self._config.network_timeout,
            )
        await self._git(
            repository,
            SyncStep.REMOTE_CONFIG,
            workdir,
            "config",
            "advice.detachedHead",
            "false",
        )
        _LOGGER.info("Checking out %s", repository)
        await self._git(
            repository,
            SyncStep.CHECKOUT,
            workdir,
            "checkout",
            "-f",
            repository.ref,
            "--",
            timeout=self._config.network_timeout,
        )

    async def _update_submodules(self, repository: Repository, workdir: Path) -> None:
        """Synchronize submodule remotes and then initialize and update them."""
        _LOGGER.info("Updating submodules of %s", repository.full_name)
        await self._git(
            repository,
            SyncStep.SUBMODULE_UPDATE,
            workdir,
            "submodule",
            "foreach",
            "--recursive",
            "git",
            "submodule",
            "sync",
        )
        await self._git(
            repository,
            SyncStep.SUBMODULE_UPDATE,
            workdir,
            "submodule",
            "update",
            "--init",
            "--recursive",
            timeout=self._config.network_timeout,
        )

    async def _has_commit(self, repository: Repository, workdir: Path) -> bool:
        """Return True if the ref resolves to a commit in the local object database."""
        out = await self._git(
            repository,
            SyncStep.FETCH,
            workdir,
            "rev-parse",
            "-q",
            "--verify",
            f"{repository.ref}^{{commit}}",
            retcodes=[1, 128],
        )
        return bool(out.strip())

    async def _git(
        self,
        repository: Repository,
        step: SyncStep,
        workdir: Path,
        *args: str,
        retcodes: list[int] | None = None,
        timeout: float | None = command.DEFAULT_TIMEOUT,
    ) -> str:
        """Run a git command in the working directory for a sync step."""
        cmd = command.Command(
            [GIT_BIN, *args],
            cwd=workdir,
            retcodes=retcodes,
            timeout=timeout,
        )
        try:
            return await self._executor.run(cmd)
        except CommandException as err:
            raise SyncError(repository.full_name, step, str(err)) from err

"""Library for applying a source patch to a working tree.

A patch comes either from a remote url, in which case it must be downloaded
and pass a digest check before it is applied, or from a local path that the
caller vouches for. The two sources are distinct types rather than being
guessed from the shape of a string:
```python
from buildfetch.patch import LocalPatch, PatchApplier, RemotePatch

applier = PatchApplier(fetcher, executor)
await applier.apply(RemotePatch("https://example.org/fix.patch"), workdir, "9b1c...")
await applier.apply(LocalPatch(Path("patches/local.patch")), workdir)
```

A failed application may leave the working tree partially patched. The
usual recovery is to sync the repository again, which hard resets it.
"""

from dataclasses import dataclass
import logging
from pathlib import Path

from . import command
from .context import trace_context
from .digest import try_file_digest
from .exceptions import ApplyFailedError, HashMismatchError, MissingDigestError
from .fetch import Fetcher, TransferMode

__all__ = [
    "LocalPatch",
    "PatchApplier",
    "RemotePatch",
]

_LOGGER = logging.getLogger(__name__)

PATCH_BIN = "patch"
PATCH_ARGS = ["-g", "0", "-f", "-p1"]
"""Never consult version control, never prompt, strip one leading directory."""


@dataclass(frozen=True)
class RemotePatch:
    """A patch downloaded from a url."""

    url: str

    def __str__(self) -> str:
        return self.url


@dataclass(frozen=True)
class LocalPatch:
    """A patch read from the local filesystem."""

    path: Path

    def __str__(self) -> str:
        return str(self.path)


PatchSource = RemotePatch | LocalPatch


class PatchApplier:
    """Resolves patch sources and applies them with the `patch` tool."""

    def __init__(self, fetcher: Fetcher, executor: command.Executor) -> None:
        """Initialize PatchApplier."""
        self._fetcher = fetcher
        self._executor = executor

    async def apply(
        self,
        source: PatchSource,
        workdir: Path,
        expected_digest: str | None = None,
    ) -> None:
        """Apply the patch to the working tree in `workdir`."""
        with trace_context("apply_patch", str(source)):
            patch_file = await self._resolve(source, workdir, expected_digest)
            _LOGGER.info("Applying patch %s", source)
            await self._executor.run(
                command.Command(
                    [PATCH_BIN, *PATCH_ARGS, "-i", str(patch_file)],
                    cwd=workdir,
                    exc=ApplyFailedError,
                )
            )

    async def _resolve(
        self,
        source: PatchSource,
        workdir: Path,
        expected_digest: str | None,
    ) -> Path:
        """Return a local patch file that is safe to apply."""
        if isinstance(source, LocalPatch):
            return source.path if source.path.is_absolute() else workdir / source.path
        if not expected_digest:
            raise MissingDigestError(source.url)
        path = await self._fetcher.transfer(source.url, workdir, TransferMode.FRESH)
        if (actual := await try_file_digest(path)) != expected_digest:
            _LOGGER.error("%s downloaded successfully and failed hash check", path.name)
            raise HashMismatchError(path, expected_digest, actual)
        _LOGGER.info("%s downloaded successfully and passed hash check", path.name)
        return path

"""Library for downloading files and verifying them by digest.

This is an example that downloads an archive into a build directory,
skipping the download entirely when a previous run already left a verified
copy in place:
```python
from buildfetch.command import SubprocessExecutor
from buildfetch.config import BuildEnvironment
from buildfetch.fetch import Fetcher

fetcher = Fetcher(BuildEnvironment.from_env(), SubprocessExecutor())
path = await fetcher.fetch_if_needed(
    "https://example.org/pkg-1.0.tar.gz",
    "a3f5...",
    Path("build/deps"),
)
```

A file is only trusted once its digest matches. A digest mismatch after a
download raises `HashMismatchError` and leaves the file on disk so it can be
inspected.
"""

from dataclasses import dataclass
from enum import StrEnum
import logging
from pathlib import Path, PurePosixPath
from urllib.parse import urlparse

from . import command
from .config import BuildEnvironment
from .context import trace_context
from .digest import try_file_digest, verify
from .exceptions import (
    HashMismatchError,
    InvalidArgumentsError,
    TransferFailedError,
)

__all__ = [
    "Artifact",
    "Fetcher",
    "TransferMode",
]

_LOGGER = logging.getLogger(__name__)


class TransferMode(StrEnum):
    """How to treat a partially downloaded file."""

    RESUME = "resume"
    """Continue the transfer from the size of the existing file."""

    FRESH = "fresh"
    """Start the transfer from zero, overwriting any existing file."""


RESUME_FLAGS = ("--continue-at", "-C")


def without_resume(args: list[str]) -> list[str]:
    """Return the downloader arguments with any resume-from-offset flag removed."""
    result: list[str] = []
    skip = False
    for arg in args:
        if skip:
            skip = False
        elif arg in RESUME_FLAGS:
            skip = True
        elif not arg.startswith(("--continue-at=", "-C")):
            result.append(arg)
    return result


def local_file_name(url: str) -> str:
    """Return the file name a url is downloaded to."""
    return PurePosixPath(urlparse(url).path).name


@dataclass(frozen=True, kw_only=True)
class Artifact:
    """A single file obtained by url and verified by digest."""

    url: str
    """Source url of the file."""

    digest: str
    """Expected hex encoded SHA-256 of the file contents."""

    mode: TransferMode = TransferMode.RESUME
    """Transfer mode used when the file needs to be downloaded."""

    @classmethod
    def from_args(cls, url: str, digest: str, mode: TransferMode) -> "Artifact":
        """Create an Artifact, validating the caller supplied values."""
        if not url or not digest:
            raise InvalidArgumentsError(
                f"A url and an expected digest are required (url={url!r}, digest={digest!r})"
            )
        if not local_file_name(url):
            raise InvalidArgumentsError(f"Unable to derive a file name from url {url}")
        return cls(url=url, digest=digest, mode=mode)

    @property
    def file_name(self) -> str:
        """Local file name derived from the url."""
        return local_file_name(self.url)

    def local_path(self, workdir: Path) -> Path:
        """Path the artifact is stored at inside the working directory."""
        return workdir / self.file_name


class Fetcher:
    """Downloads artifacts into a working directory."""

    def __init__(self, config: BuildEnvironment, executor: command.Executor) -> None:
        """Initialize Fetcher."""
        self._config = config
        self._executor = executor

    async def transfer(
        self, url: str, workdir: Path, mode: TransferMode = TransferMode.RESUME
    ) -> Path:
        """Download the url into the working directory without verification.

        Returns the path of the downloaded file.
        """
        file_name = local_file_name(url)
        if not file_name:
            raise InvalidArgumentsError(f"Unable to derive a file name from url {url}")
        args = without_resume(self._config.downloader)
        if mode == TransferMode.RESUME:
            args.extend(["--continue-at", "-"])
        args.extend(["--output", file_name, url])
        await self._executor.run(
            command.Command(
                args,
                cwd=workdir,
                exc=TransferFailedError,
                timeout=self._config.network_timeout,
            )
        )
        return workdir / file_name

    async def fetch(
        self,
        url: str,
        expected_digest: str,
        workdir: Path,
        mode: TransferMode = TransferMode.RESUME,
    ) -> Path:
        """Download the url and verify the result against the expected digest."""
        artifact = Artifact.from_args(url, expected_digest, mode)
        with trace_context("fetch", artifact.file_name):
            return await self._fetch(artifact, workdir)

    async def fetch_if_needed(
        self,
        url: str,
        expected_digest: str,
        workdir: Path,
        mode: TransferMode = TransferMode.RESUME,
    ) -> Path:
        """Return the verified local file, downloading it only if needed."""
        artifact = Artifact.from_args(url, expected_digest, mode)
        with trace_context("fetch_if_needed", artifact.file_name):
            path = artifact.local_path(workdir)
            if await verify(path, artifact.digest):
                _LOGGER.info("%s exists and passed hash check", artifact.file_name)
                return path
            return await self._fetch(artifact, workdir)

    async def _fetch(self, artifact: Artifact, workdir: Path) -> Path:
        path = await self.transfer(artifact.url, workdir, artifact.mode)
        actual = await try_file_digest(path)
        if actual != artifact.digest:
            _LOGGER.error(
                "%s downloaded successfully and failed hash check", artifact.file_name
            )
            raise HashMismatchError(path, artifact.digest, actual)
        _LOGGER.info(
            "%s downloaded successfully and passed hash check", artifact.file_name
        )
        return path

"""Configuration objects for buildfetch.

The environment is read once by the sequencer, typically at startup:
```python
from buildfetch.command import SubprocessExecutor
from buildfetch.config import BuildEnvironment

executor = SubprocessExecutor()
config = await BuildEnvironment.probe(executor)
```
and the resulting value is passed to each component, so components never
consult `os.environ` directly.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
import logging
import os
import shlex

from . import command
from .version import ToolVersion, detect_git_version

__all__ = [
    "BuildEnvironment",
]

_LOGGER = logging.getLogger(__name__)

DEFAULT_DOWNLOADER = [
    "curl",
    "--fail",
    "--silent",
    "--show-error",
    "--location",
    "--retry",
    "3",
]
DEFAULT_GIT_REMOTE_BASE = "https://github.com"


def _default_downloader() -> list[str]:
    return list(DEFAULT_DOWNLOADER)


@dataclass(frozen=True)
class BuildEnvironment:
    """Process wide settings shared by the fetch, sync and patch components."""

    ci: bool = False
    """True when running in a continuous integration context."""

    git_version: ToolVersion | None = None
    """Installed git version, or None if git was not found."""

    downloader: list[str] = field(default_factory=_default_downloader)
    """Downloader command line, without output, resume or url arguments."""

    git_remote_base: str = DEFAULT_GIT_REMOTE_BASE
    """Base url that `owner/repo` is appended to when building remote urls."""

    network_timeout: float | None = None
    """Timeout in seconds for downloads, clones and fetches."""

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        git_version: ToolVersion | None = None,
    ) -> "BuildEnvironment":
        """Build the configuration from environment variables.

        `CI` enables CI only behavior when set to any non-empty value, and
        `CURLCMD` replaces the downloader command line.
        """
        if environ is None:
            environ = os.environ
        downloader = _default_downloader()
        if curl_cmd := environ.get("CURLCMD"):
            downloader = shlex.split(curl_cmd)
            _LOGGER.debug("Using downloader from CURLCMD: %s", downloader)
        return cls(
            ci=bool(environ.get("CI")),
            git_version=git_version,
            downloader=downloader,
        )

    @classmethod
    async def probe(
        cls,
        executor: command.Executor,
        environ: Mapping[str, str] | None = None,
    ) -> "BuildEnvironment":
        """Build the configuration from the environment and installed tools."""
        git_version = await detect_git_version(executor)
        return cls.from_env(environ, git_version=git_version)

"""Parsing and comparison of installed tool versions.

Tools report versions in a variety of free-form strings, for example:
```
git version 2.39.2
git version 2.39.3 (Apple Git-146)
git version 2.45.0.windows.1
git version 2.46.0-rc1
```

Only the leading dot separated integers are significant. Components beyond
the third, and any suffix, are ignored so `2.45.0.windows.1` compares equal
to `2.45.0`. A single component version such as `3` is treated as `3.0.0`.
"""

from dataclasses import dataclass
import logging
import re

from . import command
from .exceptions import CommandException

__all__ = [
    "ToolVersion",
    "detect_git_version",
]

_LOGGER = logging.getLogger(__name__)

GIT_BIN = "git"

_VERSION_RE = re.compile(r"(\d+)(?:\.(\d+))?(?:\.(\d+))?")
_GIT_PREFIX = "git version "


@dataclass(frozen=True, order=True)
class ToolVersion:
    """A parsed major.minor.patch version with a total ordering."""

    major: int
    minor: int = 0
    patch: int = 0

    @classmethod
    def parse(cls, value: str) -> "ToolVersion | None":
        """Parse a version string, returning None if it has no leading number."""
        value = value.strip()
        if value.startswith(_GIT_PREFIX):
            value = value[len(_GIT_PREFIX) :]
        if not (match := _VERSION_RE.match(value)):
            return None
        major, minor, patch = match.groups()
        return cls(int(major), int(minor or 0), int(patch or 0))

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"


SPARSE_CHECKOUT_VERSION = ToolVersion(2, 25)
"""First git release with the `sparse-checkout` command."""


async def detect_git_version(executor: command.Executor) -> ToolVersion | None:
    """Return the installed git version, or None if git is not available."""
    try:
        out = await executor.run(command.Command([GIT_BIN, "--version"]))
    except CommandException as err:
        _LOGGER.info("Git not available: %s", err)
        return None
    version = ToolVersion.parse(out)
    if version is None:
        _LOGGER.warning("Unable to parse git version from '%s'", out.strip())
        return None
    _LOGGER.info("Git version %s available", version)
    return version

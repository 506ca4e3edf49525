"""Library for issuing commands using asyncio and returning the result.

Every external tool used by buildfetch (the downloader, git, and patch) is
invoked through an `Executor`. The default `SubprocessExecutor` runs the
command for real, while tests substitute a fake that records the `Command`
objects it receives.
"""

import asyncio
import contextlib
from abc import ABC, abstractmethod
import logging
import os
import shlex
import signal
import subprocess
from dataclasses import dataclass
from pathlib import Path

from .exceptions import CommandException

_LOGGER = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60.0


__all__ = [
    "Command",
    "Executor",
    "SubprocessExecutor",
    "run",
]


def format_path(path: Path) -> str:
    """Format path for debugging."""
    if path.is_absolute():
        cwd = Path.cwd()
        if path.is_relative_to(cwd):
            rel_path = str(path.relative_to(cwd))
            return f"{rel_path} (abs)"
    return str(path)


@dataclass
class Command:
    """An instance of a command to run."""

    cmd: list[str]
    """Array of command line arguments."""

    cwd: Path | None = None
    """Current working directory."""

    exc: type[CommandException] = CommandException
    """Exception to throw in case of an error."""

    retcodes: list[int] | None = None
    """Non-zero error codes that are allowed to indicate success (e.g. for rev-parse)."""

    env: dict[str, str] | None = None
    """Environment variables for the subprocess."""

    timeout: float | None = DEFAULT_TIMEOUT
    """Seconds to wait for the command, or None to wait indefinitely."""

    @property
    def string(self) -> str:
        """Render the command as a single string."""
        return " ".join([shlex.quote(arg) for arg in self.cmd])

    def __str__(self) -> str:
        """Render as a debug string."""
        cwd: str = ""
        if self.cwd:
            cwd = f"({format_path(self.cwd)}) "
        return f"{cwd}{self.string}"

    async def run(self) -> bytes:
        """Run the command, returning stdout."""
        _LOGGER.debug("Running command: %s", self)
        env = {
            **os.environ,
            **(self.env if self.env else {}),
        }
        try:
            proc = await asyncio.create_subprocess_shell(
                self.string,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                cwd=self.cwd,
                env=env,
                start_new_session=True,
            )
        except OSError as start_err:
            raise self.exc(
                f"Command '{self}' could not be started: {start_err}"
            ) from start_err
        try:
            out, err = await asyncio.wait_for(proc.communicate(), self.timeout)
        except asyncio.exceptions.TimeoutError as timeout_err:
            # The shell and everything it spawned share one process group
            with contextlib.suppress(ProcessLookupError):
                os.killpg(proc.pid, signal.SIGKILL)
            await proc.wait()
            raise self.exc(f"Command '{self}' timed out") from timeout_err
        if proc.returncode:
            if self.retcodes and proc.returncode in self.retcodes:
                return out
            errors = [f"Command '{self}' failed with return code {proc.returncode}"]
            if out:
                errors.append(out.decode("utf-8"))
            if err:
                errors.append(err.decode("utf-8"))
            _LOGGER.debug("\n".join(errors))
            raise self.exc("\n".join(errors))
        return out


async def run(cmd: Command) -> str:
    """Run the specified command to completion and return stdout."""
    out = await cmd.run()
    return out.decode("utf-8") if out else ""


class Executor(ABC):
    """Runs external commands on behalf of the fetch and sync components."""

    @abstractmethod
    async def run(self, cmd: Command) -> str:
        """Execute the command and return stdout.

        Raises `cmd.exc` when the command exits with a disallowed return code.
        """


class SubprocessExecutor(Executor):
    """Executor that spawns real subprocesses."""

    async def run(self, cmd: Command) -> str:
        """Execute the command and return stdout."""
        return await run(cmd)

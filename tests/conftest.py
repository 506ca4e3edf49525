"""Test fixtures for buildfetch."""

from collections.abc import Callable
from pathlib import Path

import pytest

from buildfetch.command import Command, Executor
from buildfetch.config import BuildEnvironment
from buildfetch.version import ToolVersion

Handler = Callable[[Command], str]


class FakeExecutor(Executor):
    """Executor that records commands and returns scripted output.

    Handlers are matched against a prefix of the command line, most recently
    registered first. Commands without a matching handler succeed with no
    output.
    """

    def __init__(self) -> None:
        self.commands: list[Command] = []
        self._handlers: list[tuple[list[str], Handler]] = []

    def on(self, prefix: list[str], handler: Handler) -> None:
        """Register a handler for commands starting with `prefix`."""
        self._handlers.insert(0, (prefix, handler))

    def fail(self, prefix: list[str], message: str = "boom") -> None:
        """Make commands starting with `prefix` fail with their exception type."""

        def handler(cmd: Command) -> str:
            raise cmd.exc(f"Command '{cmd}' failed with return code 1\n{message}")

        self.on(prefix, handler)

    @property
    def args(self) -> list[list[str]]:
        """Command lines of all commands run so far."""
        return [cmd.cmd for cmd in self.commands]

    def count(self, prefix: list[str]) -> int:
        """Number of commands run that start with `prefix`."""
        return sum(1 for args in self.args if args[: len(prefix)] == prefix)

    async def run(self, cmd: Command) -> str:
        self.commands.append(cmd)
        for prefix, handler in self._handlers:
            if cmd.cmd[: len(prefix)] == prefix:
                return handler(cmd)
        return ""


@pytest.fixture(name="executor")
def executor_fixture() -> FakeExecutor:
    """Fixture for a fake executor that records commands."""
    return FakeExecutor()


@pytest.fixture(name="config")
def config_fixture() -> BuildEnvironment:
    """Fixture for a non-CI environment with a recent git."""
    return BuildEnvironment(ci=False, git_version=ToolVersion(2, 30, 0))


@pytest.fixture(name="workdir")
def workdir_fixture(tmp_path: Path) -> Path:
    """Fixture for an empty working directory."""
    path = tmp_path / "work"
    path.mkdir()
    return path

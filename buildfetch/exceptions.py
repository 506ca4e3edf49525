"""Exceptions related to buildfetch."""

from pathlib import Path

__all__ = [
    "BuildFetchException",
    "InputException",
    "InvalidArgumentsError",
    "MissingDigestError",
    "CommandException",
    "TransferFailedError",
    "SyncError",
    "ApplyFailedError",
    "VerificationException",
    "HashMismatchError",
]


class BuildFetchException(Exception):
    """Generic base exception used for this library."""


class InputException(BuildFetchException):
    """Raised when the caller supplied arguments that violate the contract."""


class InvalidArgumentsError(InputException):
    """Raised when a required parameter such as a url or digest is missing."""


class MissingDigestError(InputException):
    """Raised when a remote patch is requested without an expected digest."""

    def __init__(self, url: str) -> None:
        super().__init__(f"Patch {url} is remote and requires an expected digest")
        self.url = url


class CommandException(BuildFetchException):
    """Raised when there is a failure running a subcommand."""


class TransferFailedError(CommandException):
    """Raised when the downloader process fails."""


class SyncError(CommandException):
    """Raised when a git operation fails while synchronizing a repository.

    The `step` identifies which stage of the synchronization failed so a
    human can decide whether to wipe the checkout or simply re-run.
    """

    def __init__(self, repository: str, step: str, message: str | None = None) -> None:
        super().__init__(
            f"Repository {repository} failed during {step}: {message or 'Unknown error'}"
        )
        self.repository = repository
        self.step = step
        self.message = message


class ApplyFailedError(CommandException):
    """Raised when the patch tool rejects a diff against the working tree."""


class VerificationException(BuildFetchException):
    """Raised when downloaded content does not pass verification."""


class HashMismatchError(VerificationException):
    """Raised when a file is present but its digest does not match."""

    def __init__(self, path: Path, expected: str, actual: str | None) -> None:
        super().__init__(
            f"{path.name} failed hash check: expected {expected}, "
            f"got {actual or 'unreadable file'}"
        )
        self.path = path
        self.expected = expected
        self.actual = actual

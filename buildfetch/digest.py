"""Content digests used to verify downloaded artifacts."""

import hashlib
import logging
from pathlib import Path

import aiofiles
from aiofiles.ospath import isfile

__all__ = [
    "file_digest",
    "try_file_digest",
    "verify",
]

_LOGGER = logging.getLogger(__name__)

_CHUNK_SIZE = 1024 * 1024


async def file_digest(path: Path) -> str:
    """Return the hex encoded SHA-256 of the file contents."""
    digest = hashlib.sha256()
    async with aiofiles.open(path, mode="rb") as infile:
        while chunk := await infile.read(_CHUNK_SIZE):
            digest.update(chunk)
    return digest.hexdigest()


async def try_file_digest(path: Path) -> str | None:
    """Return the digest of the file, or None if it is missing or unreadable."""
    if not await isfile(path):
        return None
    try:
        return await file_digest(path)
    except OSError as err:
        _LOGGER.debug("Unable to read %s: %s", path, err)
        return None


async def verify(path: Path, expected_digest: str) -> bool:
    """Return True if the file exists and its digest is exactly `expected_digest`.

    A missing or unreadable file is reported as a failed verification rather
    than an error; the caller decides whether that is fatal.
    """
    actual = await try_file_digest(path)
    return actual is not None and actual == expected_digest

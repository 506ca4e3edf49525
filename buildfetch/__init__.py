"""
buildfetch acquires the external inputs of a build: archives verified by
digest, git repositories synced to an exact reference, and source patches.
"""

__all__ = [
    "command",
    "config",
    "context",
    "digest",
    "exceptions",
    "fetch",
    "git",
    "patch",
    "version",
]

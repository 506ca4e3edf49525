"""Utilities for tracing acquisition operations.

Each public operation runs inside `trace_context`, which keeps a stack of
operation labels so nested steps (e.g. the transfer inside a patch apply)
are logged with their parent, along with the elapsed time.
"""

import contextvars
from contextlib import contextmanager
import logging
from time import perf_counter
from typing import Generator


_LOGGER = logging.getLogger(__name__)

__all__ = [
    "trace_context",
    "current_trace",
]


_trace: contextvars.ContextVar[tuple[str, ...]] = contextvars.ContextVar(
    "trace", default=()
)


def current_trace() -> str:
    """Return the label of the operations currently in progress."""
    return " > ".join(_trace.get())


@contextmanager
def trace_context(operation: str, target: str) -> Generator[None, None, None]:
    """Trace an operation performed against a target artifact or repository."""
    token = _trace.set(_trace.get() + (f"{operation}({target})",))
    label = current_trace()
    started = perf_counter()
    _LOGGER.debug("[Trace] > %s", label)
    failed = True
    try:
        yield
        failed = False
    finally:
        elapsed = perf_counter() - started
        _trace.reset(token)
        _LOGGER.debug(
            "[Trace] < %s (%0.2fs%s)", label, elapsed, ", failed" if failed else ""
        )

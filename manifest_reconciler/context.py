"""Tracing of reconciliation passes.

Each pass runs inside a `trace_context` scope labelled with the resource
being reconciled, which logs the duration of the pass. Nested scopes such as
the installer call add their own label to the trace.
"""

import contextvars
from contextlib import contextmanager
import logging
from time import perf_counter
from typing import Generator

_LOGGER = logging.getLogger(__name__)

# No public API
__all__: list[str] = []


_trace: contextvars.ContextVar[tuple[str, ...]] = contextvars.ContextVar(
    "trace", default=()
)


def current_trace() -> str:
    """Return the label of the active trace scopes."""
    return " > ".join(_trace.get())


@contextmanager
def trace_context(name: str) -> Generator[None, None, None]:
    """Log entry and exit of a named scope along with its duration."""
    token = _trace.set(_trace.get() + (name,))
    label = current_trace()
    t1 = perf_counter()
    _LOGGER.debug("[Trace] > %s", label)
    try:
        yield
    finally:
        _LOGGER.debug("[Trace] < %s (%0.2fs)", label, perf_counter() - t1)
        _trace.reset(token)

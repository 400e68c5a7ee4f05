"""
Opt-in statement tracing and DB call counting.

Both toggles live in context variables, so they apply to the block that turns them on
and to everything it calls, and never to unrelated threads or tasks.
"""

import threading
from contextlib import contextmanager
from typing import Any, Callable, Iterator

from .state import _CALL_COUNTER, _DEBUG

_debug_sink: Callable[..., None] = print


def set_debug_sink(sink: Callable[..., None] | None) -> Callable[..., None]:
    """
    Replace the function trace lines are written to.

    Args:
        sink: A print-compatible callable, or None to restore writing to stdout.

    Returns:
        The previous sink, so callers can restore it.
    """
    global _debug_sink
    previous = _debug_sink
    _debug_sink = sink if sink is not None else print
    return previous


def debug_println(*args: Any) -> None:
    """Write ``args`` to the debug sink if tracing is on for the current scope."""
    if _DEBUG.get():
        _debug_sink(*args)


@contextmanager
def debug() -> Iterator[None]:
    """
    Print the structured and SQL forms of every query executed inside the block.

    Intended for use during interactive development:

        with conduit.debug():
            conduit.query(Venue, sa.select(Venue.__table__))
    """
    token = _DEBUG.set(True)
    try:
        yield
    finally:
        _DEBUG.reset(token)


class CallCounter:
    """A thread-safe counter of statements sent through the execution pipeline."""

    def __init__(self) -> None:
        self._count = 0
        self._lock = threading.Lock()

    def increment(self) -> int:
        with self._lock:
            self._count += 1
            return self._count

    def __call__(self) -> int:
        return self._count

    def __repr__(self) -> str:
        return f"CallCounter({self._count})"


@contextmanager
def call_counting() -> Iterator[Callable[[], int]]:
    """
    Count the DB calls made inside the block.

    Yields a zero-argument function returning the current count. Statements sent to
    the database without going through Conduit are not counted. A nested block gets
    its own counter starting at zero and statements inside it are only counted there.

        with conduit.call_counting() as call_count:
            conduit.query("SELECT 1")
            assert call_count() == 1
    """
    counter = CallCounter()
    token = _CALL_COUNTER.set(counter)
    try:
        yield counter
    finally:
        _CALL_COUNTER.reset(token)


def do_with_call_counting(f: Callable[[Callable[[], int]], Any]) -> Any:
    """Call ``f`` with DB call counting enabled, passing it the count accessor."""
    with call_counting() as call_count:
        return f(call_count)


@contextmanager
def debug_count_calls() -> Iterator[Callable[[], int]]:
    """Write the number of DB calls executed inside the block to the debug sink."""
    with call_counting() as call_count:
        yield call_count
        _debug_sink("DB Calls:", call_count())


def inc_call_count() -> None:
    counter = _CALL_COUNTER.get()
    if counter is not None:
        counter.increment()

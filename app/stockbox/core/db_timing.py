from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator

# Holds a one-element accumulator so threadpool copies of the context share it.
_request_db_ms: ContextVar[list[float] | None] = ContextVar("request_db_ms", default=None)


@contextmanager
def track_db_time() -> Iterator[None]:
    """Accumulate cursor time for the current request while the block runs."""
    token = _request_db_ms.set([0.0])
    try:
        yield
    finally:
        _request_db_ms.reset(token)


def add_db_time(delta_ms: float) -> None:
    accumulator = _request_db_ms.get()
    if accumulator is None:
        return
    accumulator[0] += delta_ms


def get_db_time_ms() -> float | None:
    accumulator = _request_db_ms.get()
    return accumulator[0] if accumulator is not None else None

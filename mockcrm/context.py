from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar

_correlation_id: ContextVar[str | None] = ContextVar("mockcrm_correlation_id", default=None)


def get_correlation_id() -> str | None:
    return _correlation_id.get()


@contextmanager
def bound_correlation_id(value: str) -> Iterator[None]:
    """Make ``value`` the correlation id seen by log records and audit entries inside the block."""

    token = _correlation_id.set(value)
    try:
        yield
    finally:
        _correlation_id.reset(token)

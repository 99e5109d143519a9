"""Caller-supplied cancellation for traversals and report generation."""

from __future__ import annotations

import time

from ropa_core.exceptions import CancelledError


class CancellationToken:
    """Cancelled explicitly via ``cancel()`` or implicitly once ``deadline`` passes.

    ``deadline`` is a ``time.monotonic()`` timestamp.
    """

    def __init__(self, *, deadline: float | None = None) -> None:
        self._deadline = deadline
        self._cancelled = False

    @classmethod
    def with_timeout(cls, seconds: float) -> CancellationToken:
        return cls(deadline=time.monotonic() + seconds)

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        if self._cancelled:
            return True
        return self._deadline is not None and time.monotonic() >= self._deadline

    def raise_if_cancelled(self, operation: str = "operation") -> None:
        if self._cancelled:
            raise CancelledError(f"{operation} was cancelled")
        if self._deadline is not None and time.monotonic() >= self._deadline:
            raise CancelledError(f"{operation} exceeded its deadline")


def check(token: CancellationToken | None, operation: str) -> None:
    if token is not None:
        token.raise_if_cancelled(operation)

"""Cooperative cancellation and progress reporting shared by all engines."""

import threading
from dataclasses import dataclass
from typing import Optional

from .exceptions import OperationCancelledError


class CancellationToken:
    """Thread-safe cancellation flag polled at file boundaries.

    One token may be shared by the caller and any number of worker threads.
    Engines call ``raise_if_cancelled()`` between units of work.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        """Request cancellation."""
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, message: str = "Operation was cancelled") -> None:
        if self._event.is_set():
            raise OperationCancelledError(message)


def check_cancelled(
    token: Optional[CancellationToken], message: str = "Operation was cancelled"
) -> None:
    """Raise OperationCancelledError if ``token`` is set; a None token never trips."""
    if token is not None:
        token.raise_if_cancelled(message)


@dataclass(frozen=True)
class ProgressEvent:
    """One unit of completed work, produced lazily by long-running passes."""

    phase: str
    completed: int
    total: int
    path: Optional[str] = None
    error: Optional[str] = None

    @property
    def percent_complete(self) -> int:
        if self.total == 0:
            return 100
        return int(self.completed * 100 / self.total)

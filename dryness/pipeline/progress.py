"""Progress reporting and cooperative cancellation for long-running stages."""

from __future__ import annotations

import threading
from typing import Callable

ProgressCallback = Callable[[float, str], None]


class OperationCancelled(Exception):
    """Raised at a chunk boundary once cancellation has been requested."""


class ProgressReporter:
    """Forwards ``(fraction, message)`` updates and checks for cancellation.

    Every ``update`` is also a cancellation checkpoint, so stages only need to
    call it at their chunk boundaries.
    """

    def __init__(
        self,
        callback: ProgressCallback | None = None,
        cancel_event: threading.Event | None = None,
        *,
        start: float = 0.0,
        end: float = 1.0,
    ) -> None:
        self.callback = callback
        self.cancel_event = cancel_event
        self.start = start
        self.end = end

    def checkpoint(self) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise OperationCancelled()

    def update(self, fraction: float, message: str) -> None:
        self.checkpoint()
        if self.callback is None:
            return
        fraction = min(max(fraction, 0.0), 1.0)
        self.callback(self.start + (self.end - self.start) * fraction, message)

    def span(self, start: float, end: float) -> "ProgressReporter":
        """Sub-reporter mapping ``[0, 1]`` onto ``[start, end]`` of this one."""
        width = self.end - self.start
        return ProgressReporter(
            self.callback,
            self.cancel_event,
            start=self.start + width * start,
            end=self.start + width * end,
        )

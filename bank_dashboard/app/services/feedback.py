from __future__ import annotations

from typing import Callable, Optional

from ..core.scheduler import Scheduler, TimerHandle


class FeedbackExpiry:
    """Single pending dwell timer for transient success/error feedback."""

    def __init__(self, scheduler: Scheduler, dwell: float = 5.0) -> None:
        self.scheduler = scheduler
        self.dwell = dwell
        self._handle: Optional[TimerHandle] = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def schedule(self, callback: Callable[[], None]) -> None:
        self.cancel()
        self._handle = self.scheduler.call_later(self.dwell, self._fire, callback)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self, callback: Callable[[], None]) -> None:
        self._handle = None
        callback()

from __future__ import annotations

import asyncio
from typing import Any, Callable, Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """The slice of the asyncio event loop interface the timers rely on."""

    def time(self) -> float: ...

    def call_later(
        self, delay: float, callback: Callable[..., Any], *args: Any
    ) -> TimerHandle: ...


def get_scheduler() -> Scheduler:
    return asyncio.get_running_loop()

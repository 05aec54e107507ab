from __future__ import annotations

import logging
from typing import Optional

from ..core.scheduler import Scheduler, TimerHandle
from ..models import OtpDisclosure

logger = logging.getLogger(__name__)

FULL_PROGRESS = 100


class DisclosureTimer:
    """Shows a server-issued passcode for a bounded window.

    Two scheduled callbacks cooperate: a re-armed tick that walks ``progress``
    down by one, and a hard expiry armed once at ``window`` seconds. Whichever
    brings the disclosure to its end first wins; the other finds nothing left
    to do. Only one of each is ever armed.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        window: float = 5.0,
        tick: float = 0.05,
    ) -> None:
        if window <= 0 or tick <= 0:
            raise ValueError("Disclosure window and tick must be positive")
        self.scheduler = scheduler
        self.window = window
        self.tick = tick
        self._code = ""
        self._progress = 0
        self._visible = False
        self._tick_handle: Optional[TimerHandle] = None
        self._expiry_handle: Optional[TimerHandle] = None

    @property
    def code(self) -> str:
        return self._code

    @property
    def progress(self) -> int:
        return self._progress

    @property
    def visible(self) -> bool:
        return self._visible

    @property
    def active(self) -> bool:
        return self._tick_handle is not None or self._expiry_handle is not None

    def snapshot(self) -> OtpDisclosure:
        return OtpDisclosure(code=self._code, progress=self._progress, visible=self._visible)

    def start(self, code: str) -> None:
        self._halt()
        self._code = code
        self._progress = FULL_PROGRESS
        self._visible = True
        self._tick_handle = self.scheduler.call_later(self.tick, self._on_tick)
        self._expiry_handle = self.scheduler.call_later(self.window, self._on_expiry)
        logger.debug("otp.disclosure.started", extra={"window": self.window})

    def cancel(self) -> None:
        self._halt()
        self._code = ""
        self._progress = 0
        self._visible = False

    def _halt(self) -> None:
        if self._tick_handle is not None:
            self._tick_handle.cancel()
            self._tick_handle = None
        if self._expiry_handle is not None:
            self._expiry_handle.cancel()
            self._expiry_handle = None

    def _on_tick(self) -> None:
        self._tick_handle = None
        if not self._visible:
            return
        self._progress = max(self._progress - 1, 0)
        if self._progress == 0:
            self._expire("progress")
            return
        self._tick_handle = self.scheduler.call_later(self.tick, self._on_tick)

    def _on_expiry(self) -> None:
        self._expiry_handle = None
        self._expire("deadline")

    def _expire(self, reason: str) -> None:
        if self._visible:
            logger.info("otp.disclosure.expired", extra={"reason": reason})
        self.cancel()

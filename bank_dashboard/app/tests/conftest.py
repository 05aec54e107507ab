from __future__ import annotations

import asyncio
from decimal import Decimal
from typing import Any, Callable, Optional

import pytest

from ..core.config import Settings
from ..core.errors import AuthorityError
from ..models import Account, ChallengeIssued, TransferIntent, TransferReceipt
from ..services import TransferStateMachine


class ManualHandle:
    def __init__(self, when: float, seq: int, callback: Callable[..., Any], args: tuple) -> None:
        self.when = when
        self.seq = seq
        self.callback = callback
        self.args = args
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    def cancelled(self) -> bool:
        return self._cancelled


class ManualScheduler:
    """Virtual clock with the ``time``/``call_later`` surface of an event loop."""

    def __init__(self) -> None:
        self.now = 0.0
        self._handles: list[ManualHandle] = []
        self._seq = 0

    def time(self) -> float:
        return self.now

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> ManualHandle:
        self._seq += 1
        handle = ManualHandle(self.now + delay, self._seq, callback, args)
        self._handles.append(handle)
        return handle

    @property
    def pending(self) -> list[ManualHandle]:
        return [handle for handle in self._handles if not handle.cancelled()]

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            due = [handle for handle in self.pending if handle.when <= target + 1e-9]
            if not due:
                break
            handle = min(due, key=lambda h: (h.when, h.seq))
            self._handles.remove(handle)
            self.now = max(self.now, handle.when)
            handle.callback(*handle.args)
        self._handles = self.pending
        self.now = target


class StalledTickScheduler(ManualScheduler):
    """Drops every short-delay callback, as if tick scheduling never got a turn."""

    def __init__(self, threshold: float) -> None:
        super().__init__()
        self.threshold = threshold

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> ManualHandle:
        handle = super().call_later(delay, callback, *args)
        if delay < self.threshold:
            handle.cancel()
        return handle


class FakeAuthority:
    def __init__(self, accounts: list[Account], code: str = "111111") -> None:
        self.accounts = accounts
        self.code = code
        self.message = "OTP sent to your device."
        self.list_calls = 0
        self.initiate_calls: list[TransferIntent] = []
        self.execute_calls: list[tuple[TransferIntent, str]] = []
        self.initiate_error: Optional[Exception] = None
        self.execute_error: Optional[Exception] = None
        self.initiate_gate: Optional[asyncio.Event] = None
        self.execute_gate: Optional[asyncio.Event] = None

    async def list_accounts(self) -> list[Account]:
        self.list_calls += 1
        return list(self.accounts)

    async def initiate_transfer(self, intent: TransferIntent) -> ChallengeIssued:
        self.initiate_calls.append(intent)
        if self.initiate_gate is not None:
            await self.initiate_gate.wait()
        if self.initiate_error is not None:
            raise self.initiate_error
        return ChallengeIssued(code=self.code, message=self.message)

    async def execute_transfer(self, intent: TransferIntent, otp: str) -> TransferReceipt:
        self.execute_calls.append((intent, otp))
        if self.execute_gate is not None:
            await self.execute_gate.wait()
        if self.execute_error is not None:
            raise self.execute_error
        if otp != self.code:
            raise AuthorityError("Invalid or expired OTP.", status_code=400)
        return TransferReceipt(message="Transfer completed.")


@pytest.fixture
def accounts() -> list[Account]:
    return [
        Account(id="acc-a", account_number="1000001", account_type="checking", balance=Decimal("500.00")),
        Account(id="acc-b", account_number="1000002", account_type="savings", balance=Decimal("100.00")),
        Account(id="acc-c", account_number="1000003", account_nickname="Holiday", balance=Decimal("0.00")),
    ]


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        otp_display_ms=5000,
        otp_tick_ms=50,
        feedback_dwell_ms=5000,
    )


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def authority(accounts) -> FakeAuthority:
    return FakeAuthority(accounts)


class Notifications:
    def __init__(self) -> None:
        self.successes: list[tuple[str, bool]] = []
        self.optimistic: list[tuple] = []

    def on_success(self, message: str, should_refetch: bool) -> None:
        self.successes.append((message, should_refetch))

    def on_optimistic(self, *args) -> None:
        self.optimistic.append(args)


@pytest.fixture
def notifications() -> Notifications:
    return Notifications()


@pytest.fixture
def make_machine(authority, accounts, scheduler, settings, notifications):
    def _make(**overrides) -> TransferStateMachine:
        options = {
            "scheduler": scheduler,
            "settings": settings,
            "on_transfer_success": notifications.on_success,
            "on_optimistic_balance_update": notifications.on_optimistic,
        }
        options.update(overrides)
        return TransferStateMachine(authority, accounts, **options)

    return _make

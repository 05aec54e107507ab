from __future__ import annotations

import logging
from typing import Optional
from uuid import UUID, uuid4

from ..core.config import Settings, get_settings
from ..core.errors import SessionNotFoundError
from ..core.scheduler import Scheduler
from ..models import TransferSessionView, TransferType
from .accounts import AccountBook
from .authority import TransferAuthority
from .transfer import TransferStateMachine

logger = logging.getLogger(__name__)


class DashboardSession:
    """One open transfer form together with the account store it reports to."""

    def __init__(
        self,
        session_id: UUID,
        book: AccountBook,
        machine: TransferStateMachine,
    ) -> None:
        self.id = session_id
        self.book = book
        self.machine = machine

    async def refresh_accounts(self) -> None:
        accounts = await self.book.refresh()
        self.machine.set_accounts(accounts)

    def view(self) -> TransferSessionView:
        return self.machine.snapshot().model_copy(update={"session_id": self.id})

    def close(self) -> None:
        self.machine.close()


class TransferSessionRegistry:
    def __init__(self) -> None:
        self._sessions: dict[UUID, DashboardSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    async def open(
        self,
        authority: TransferAuthority,
        scheduler: Scheduler,
        settings: Optional[Settings] = None,
        transfer_type: TransferType = TransferType.INTERNAL,
    ) -> DashboardSession:
        settings = settings or get_settings()
        book = AccountBook(authority)
        await book.refresh()
        while self._sessions and len(self._sessions) >= settings.max_open_sessions:
            self._evict_oldest()
        machine = TransferStateMachine(
            authority,
            book.accounts,
            scheduler=scheduler,
            settings=settings,
            on_transfer_success=book.record_transfer_success,
            on_optimistic_balance_update=book.apply_optimistic_update,
            transfer_type=transfer_type,
        )
        session = DashboardSession(uuid4(), book, machine)
        self._sessions[session.id] = session
        logger.info("transfer.session.opened", extra={"session_id": str(session.id)})
        return session

    def get(self, session_id: UUID) -> DashboardSession:
        try:
            session = self._sessions.pop(session_id)
        except KeyError as exc:
            raise SessionNotFoundError(f"Transfer session {session_id} not found") from exc
        # Reinsert so iteration order runs from least to most recently used.
        self._sessions[session_id] = session
        return session

    def close(self, session_id: UUID) -> None:
        session = self._sessions.pop(session_id, None)
        if session is None:
            raise SessionNotFoundError(f"Transfer session {session_id} not found")
        session.close()
        logger.info("transfer.session.closed", extra={"session_id": str(session_id)})

    def _evict_oldest(self) -> None:
        session_id = next(iter(self._sessions))
        logger.info("transfer.session.evicted", extra={"session_id": str(session_id)})
        self.close(session_id)

    def close_all(self) -> None:
        for session_id in list(self._sessions):
            self.close(session_id)

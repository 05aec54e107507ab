from __future__ import annotations

import logging
from decimal import Decimal
from typing import Optional, Sequence

from ..models import Account, TransferType
from .authority import TransferAuthority
from .reconciler import BalanceAdjustment, apply_optimistic_transfer

logger = logging.getLogger(__name__)


class AccountBook:
    """Page-level account store.

    The authority's account listing is the source of truth; optimistic
    patches only bridge the gap until the next :meth:`refresh`.
    """

    def __init__(self, authority: TransferAuthority, accounts: Sequence[Account] = ()) -> None:
        self.authority = authority
        self._accounts: tuple[Account, ...] = tuple(accounts)
        self.notice = ""
        self.stale = False

    @property
    def accounts(self) -> tuple[Account, ...]:
        return self._accounts

    def get(self, account_id: str) -> Optional[Account]:
        for account in self._accounts:
            if account.id == account_id:
                return account
        return None

    async def refresh(self) -> tuple[Account, ...]:
        accounts = await self.authority.list_accounts()
        self._accounts = tuple(accounts)
        self.stale = False
        logger.info("accounts.refreshed", extra={"count": len(self._accounts)})
        return self._accounts

    def apply_optimistic_update(
        self,
        from_account_id: str,
        to_account_id: Optional[str],
        amount: Decimal,
        transfer_type: TransferType,
    ) -> None:
        adjustment = BalanceAdjustment(
            from_account_id=from_account_id,
            to_account_id=to_account_id,
            amount=Decimal(amount),
            transfer_type=transfer_type,
        )
        self._accounts = tuple(apply_optimistic_transfer(self._accounts, adjustment))
        logger.info(
            "accounts.optimistic_update",
            extra={
                "from_account_id": from_account_id,
                "to_account_id": to_account_id,
                "amount": str(adjustment.amount),
                "transfer_type": transfer_type.value,
            },
        )

    def record_transfer_success(self, message: str, should_refetch: bool) -> None:
        self.notice = message
        if should_refetch:
            self.stale = True

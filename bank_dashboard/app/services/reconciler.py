from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Sequence

from ..models import Account, TransferIntent, TransferType


@dataclass(frozen=True)
class BalanceAdjustment:
    from_account_id: str
    to_account_id: Optional[str]
    amount: Decimal
    transfer_type: TransferType

    @classmethod
    def from_intent(cls, intent: TransferIntent) -> "BalanceAdjustment":
        return cls(
            from_account_id=intent.from_account_id,
            to_account_id=intent.to_account_id,
            amount=intent.decimal_amount,
            transfer_type=intent.transfer_type,
        )


def apply_optimistic_transfer(
    accounts: Sequence[Account],
    adjustment: BalanceAdjustment,
) -> list[Account]:
    """Return a patched copy of ``accounts``; the input snapshot is left untouched.

    The patch only hides refresh latency. The next account listing from the
    authority replaces whatever this produced.
    """
    patched: list[Account] = []
    for account in accounts:
        if account.id == adjustment.from_account_id:
            account = account.model_copy(
                update={"balance": account.balance - adjustment.amount}
            )
        elif (
            adjustment.transfer_type is TransferType.INTERNAL
            and account.id == adjustment.to_account_id
        ):
            account = account.model_copy(
                update={"balance": account.balance + adjustment.amount}
            )
        patched.append(account)
    return patched

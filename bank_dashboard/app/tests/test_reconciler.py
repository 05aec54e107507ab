from decimal import Decimal

from ..models import TransferIntent, TransferType
from ..services.reconciler import BalanceAdjustment, apply_optimistic_transfer


def _balances(accounts) -> dict[str, Decimal]:
    return {account.id: account.balance for account in accounts}


def test_internal_adjustment_moves_funds_between_accounts(accounts) -> None:
    intent = TransferIntent(
        transfer_type=TransferType.INTERNAL,
        from_account_id="acc-a",
        to_account_id="acc-b",
        amount="50.00",
    )

    patched = apply_optimistic_transfer(accounts, BalanceAdjustment.from_intent(intent))

    assert _balances(patched) == {
        "acc-a": Decimal("450.00"),
        "acc-b": Decimal("150.00"),
        "acc-c": Decimal("0.00"),
    }


def test_external_adjustment_only_debits_source(accounts) -> None:
    adjustment = BalanceAdjustment(
        from_account_id="acc-a",
        to_account_id=None,
        amount=Decimal("10.00"),
        transfer_type=TransferType.EXTERNAL,
    )

    patched = apply_optimistic_transfer(accounts, adjustment)

    assert _balances(patched)["acc-a"] == Decimal("490.00")
    assert _balances(patched)["acc-b"] == Decimal("100.00")


def test_patch_leaves_snapshot_untouched(accounts) -> None:
    before = _balances(accounts)
    adjustment = BalanceAdjustment("acc-a", "acc-b", Decimal("1"), TransferType.INTERNAL)

    patched = apply_optimistic_transfer(accounts, adjustment)

    assert _balances(accounts) == before
    assert patched is not accounts
    assert patched[2] is accounts[2]

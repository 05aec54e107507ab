"""Turns what the user typed into a :class:`TransferIntent`.

Everything here is pure: functions take the draft and the caller's account
snapshot and return new values or raise :class:`ValidationError` naming the
offending field. No network calls happen before a draft gets through
:func:`build_transfer_intent`.
"""
from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation
from typing import Sequence

from ..core.errors import ValidationError
from ..models import Account, TransferDraft, TransferIntent, TransferType

ACCOUNT_NUMBER_PATTERN = re.compile(r"^\d{5,20}$")
_NON_DIGITS = re.compile(r"\D")

MAX_AMOUNT_INTEGER_DIGITS = 15
CENT = Decimal("0.01")


def strip_non_digits(raw: str) -> str:
    return _NON_DIGITS.sub("", raw or "")


def parse_amount(raw: str) -> Decimal:
    try:
        value = Decimal((raw or "").strip())
    except InvalidOperation as exc:
        raise ValidationError("amount", "Amount must be a number greater than zero.") from exc
    if not value.is_finite() or value <= 0:
        raise ValidationError("amount", "Amount must be a number greater than zero.")
    # Checked on the exponent so oversized input is never expanded to digits.
    if value.adjusted() >= MAX_AMOUNT_INTEGER_DIGITS:
        raise ValidationError("amount", "Amount is too large.")
    if value != value.quantize(CENT):
        raise ValidationError("amount", "Amount can have at most two decimal places.")
    return value


def internal_destinations(accounts: Sequence[Account], from_account_id: str) -> list[Account]:
    return [account for account in accounts if account.id != from_account_id]


def reconcile_selection(draft: TransferDraft, accounts: Sequence[Account]) -> TransferDraft:
    """Keep the account choices pointing at accounts that still exist."""
    ids = [account.id for account in accounts]

    from_account_id = draft.from_account_id
    if not from_account_id or from_account_id not in ids:
        from_account_id = ids[0] if ids else ""

    to_account_id = draft.to_account_id
    if draft.transfer_type is TransferType.INTERNAL:
        options = [account_id for account_id in ids if account_id != from_account_id]
        if to_account_id == from_account_id or to_account_id not in options:
            to_account_id = options[0] if options else ""

    return draft.model_copy(
        update={"from_account_id": from_account_id, "to_account_id": to_account_id}
    )


def change_transfer_type(
    draft: TransferDraft,
    transfer_type: TransferType,
    accounts: Sequence[Account],
) -> TransferDraft:
    if draft.transfer_type is transfer_type:
        return draft
    cleared = draft.model_copy(
        update={
            "transfer_type": transfer_type,
            "to_account_id": "",
            "recipient_account_number": "",
        }
    )
    return reconcile_selection(cleared, accounts)


def default_description(transfer_type: TransferType, destination: str) -> str:
    if transfer_type is TransferType.INTERNAL:
        return f"Transfer to {destination}"
    return f"Transfer to account {destination}"


def build_transfer_intent(
    draft: TransferDraft,
    accounts: Sequence[Account],
) -> TransferIntent:
    by_id = {account.id: account for account in accounts}

    from_account_id = draft.from_account_id.strip()
    if not from_account_id:
        raise ValidationError("from_account_id", "Select an account to transfer from.")
    if from_account_id not in by_id:
        raise ValidationError("from_account_id", "Selected source account is not available.")

    amount = parse_amount(draft.amount)

    if draft.transfer_type is TransferType.INTERNAL:
        if len(accounts) < 2:
            raise ValidationError(
                "to_account_id", "Internal transfers need at least two accounts."
            )
        to_account_id = draft.to_account_id.strip()
        if not to_account_id:
            raise ValidationError("to_account_id", "Select an account to transfer to.")
        if to_account_id == from_account_id:
            raise ValidationError("to_account_id", "Cannot transfer to the same account")
        if to_account_id not in by_id:
            raise ValidationError(
                "to_account_id", "Selected destination account is not available."
            )
        description = draft.description.strip() or default_description(
            draft.transfer_type, by_id[to_account_id].label
        )
        return TransferIntent(
            transfer_type=TransferType.INTERNAL,
            from_account_id=from_account_id,
            to_account_id=to_account_id,
            amount=format(amount, "f"),
            description=description,
        )

    recipient = strip_non_digits(draft.recipient_account_number)
    if not ACCOUNT_NUMBER_PATTERN.fullmatch(recipient):
        raise ValidationError(
            "recipient_account_number",
            "Recipient account number must be 5-20 digits.",
        )
    description = draft.description.strip() or default_description(
        draft.transfer_type, recipient
    )
    return TransferIntent(
        transfer_type=TransferType.EXTERNAL,
        from_account_id=from_account_id,
        recipient_account_number=recipient,
        amount=format(amount, "f"),
        description=description,
    )


def is_submittable(draft: TransferDraft, accounts: Sequence[Account]) -> bool:
    try:
        build_transfer_intent(draft, accounts)
    except ValidationError:
        return False
    return True

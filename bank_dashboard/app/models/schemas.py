from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class TransferType(str, Enum):
    INTERNAL = "internal"
    EXTERNAL = "external"


class TransferStep(str, Enum):
    DETAILS = "details"
    OTP = "otp"


class TransferStatus(str, Enum):
    IDLE = "idle"
    PROCESSING = "processing"
    SUCCESS = "success"
    ERROR = "error"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Account(CamelModel):
    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., validation_alias="_id", serialization_alias="_id")
    account_number: Optional[str] = None
    account_nickname: Optional[str] = None
    account_type: Optional[str] = None
    balance: Decimal = Field(default=Decimal("0"), description="Balance in major units")
    currency: Optional[str] = None

    @property
    def label(self) -> str:
        name = self.account_nickname or (self.account_type or "account").capitalize()
        if self.account_number:
            return f"{name} ({self.account_number})"
        return name


class TransferIntent(CamelModel):
    """Canonical transfer request; immutable once handed to the authority."""

    model_config = ConfigDict(frozen=True)

    transfer_type: TransferType
    from_account_id: str = Field(..., min_length=1)
    to_account_id: Optional[str] = None
    recipient_account_number: Optional[str] = None
    amount: str = Field(..., description="Decimal amount, string-encoded")
    description: Optional[str] = None

    @model_validator(mode="after")
    def _check_recipient(self) -> "TransferIntent":
        if self.transfer_type is TransferType.INTERNAL:
            if not self.to_account_id or self.recipient_account_number:
                raise ValueError("internal transfers need toAccountId only")
        elif not self.recipient_account_number or self.to_account_id:
            raise ValueError("external transfers need recipientAccountNumber only")
        return self

    @property
    def decimal_amount(self) -> Decimal:
        return Decimal(self.amount)

    def to_payload(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class TransferDraft(CamelModel):
    """Fields as the user has entered them so far."""

    transfer_type: TransferType = TransferType.INTERNAL
    from_account_id: str = ""
    to_account_id: str = ""
    recipient_account_number: str = ""
    amount: str = ""
    description: str = ""


class ChallengeIssued(CamelModel):
    code: Optional[str] = Field(default=None, validation_alias=AliasChoices("otp", "code"))
    message: Optional[str] = None


class TransferReceipt(CamelModel):
    model_config = ConfigDict(extra="allow")

    message: Optional[str] = None


class OtpDisclosure(CamelModel):
    code: str = ""
    progress: int = Field(default=0, ge=0, le=100)
    visible: bool = False


class TransferSessionView(CamelModel):
    session_id: Optional[UUID] = None
    step: TransferStep
    status: TransferStatus
    feedback_message: str = ""
    draft: TransferDraft
    stored_intent: Optional[TransferIntent] = None
    entered_otp: str = ""
    disclosure: OtpDisclosure
    can_submit_details: bool = False
    can_submit_otp: bool = False


class SessionCreate(CamelModel):
    transfer_type: TransferType = TransferType.INTERNAL


class DetailsUpdate(CamelModel):
    transfer_type: Optional[TransferType] = None
    from_account_id: Optional[str] = None
    to_account_id: Optional[str] = None
    recipient_account_number: Optional[str] = None
    amount: Optional[str] = None
    description: Optional[str] = None


class OtpEntry(CamelModel):
    otp: str = ""


class ExecuteRequest(CamelModel):
    otp: Optional[str] = None


class AccountsResponse(CamelModel):
    items: list[Account]
    notice: str = ""

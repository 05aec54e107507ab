from .schemas import (
    Account,
    AccountsResponse,
    ChallengeIssued,
    DetailsUpdate,
    ExecuteRequest,
    OtpDisclosure,
    OtpEntry,
    SessionCreate,
    TransferDraft,
    TransferIntent,
    TransferReceipt,
    TransferSessionView,
    TransferStatus,
    TransferStep,
    TransferType,
)

__all__ = [
    "Account",
    "AccountsResponse",
    "ChallengeIssued",
    "DetailsUpdate",
    "ExecuteRequest",
    "OtpDisclosure",
    "OtpEntry",
    "SessionCreate",
    "TransferDraft",
    "TransferIntent",
    "TransferReceipt",
    "TransferSessionView",
    "TransferStatus",
    "TransferStep",
    "TransferType",
]

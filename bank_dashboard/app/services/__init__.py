from .accounts import AccountBook
from .authority import HttpTransferAuthority, TransferAuthority
from .disclosure import DisclosureTimer
from .feedback import FeedbackExpiry
from .sessions import DashboardSession, TransferSessionRegistry
from .transfer import TransferSession, TransferStateMachine

__all__ = [
    "AccountBook",
    "DashboardSession",
    "DisclosureTimer",
    "FeedbackExpiry",
    "HttpTransferAuthority",
    "TransferAuthority",
    "TransferSession",
    "TransferSessionRegistry",
    "TransferStateMachine",
]

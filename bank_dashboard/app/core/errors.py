from __future__ import annotations

from typing import Any, Optional


class TransferError(Exception):
    """Base class for every failure surfaced by a transfer session."""


class ValidationError(TransferError):
    """Raised when a draft or passcode fails local checks; never reaches the authority."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(message)
        self.field = field


class AuthorityError(TransferError):
    """Raised when the remote authority answers with a non-success response."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        data: Any = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.data = data


class TransportError(TransferError):
    """Raised when the authority could not be reached at all."""


class ChallengeRejected(TransferError):
    """Raised when a passcode challenge could not be issued for an intent."""


class ExecutionRejected(TransferError):
    """Raised when the authority refused to execute a challenged transfer."""


class ChallengeAbandoned(ExecutionRejected):
    """Raised when a challenge expired or ran out of attempts on the client side."""


class SessionNotFoundError(Exception):
    """Raised when a transfer session id is unknown or already closed."""


class TransitionRejectedError(Exception):
    """Raised when a session action is not permitted in the current state."""

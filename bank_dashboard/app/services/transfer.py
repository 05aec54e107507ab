"""Two-phase, passcode-verified transfer orchestration.

A session moves through ``(step, status)`` pairs, and every change goes
through :meth:`TransferStateMachine._fire` which looks the move up in
``TRANSITIONS``. A trigger with no entry for the current pair is rejected
and leaves the session untouched, so a second submit while a request is in
flight is a no-op and never reaches the authority.
"""
from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Callable, Optional, Sequence

from ..core.config import Settings, get_settings
from ..core.errors import (
    AuthorityError,
    ChallengeAbandoned,
    ChallengeRejected,
    ExecutionRejected,
    TransferError,
    TransportError,
    ValidationError,
)
from ..core.scheduler import Scheduler
from ..models import (
    Account,
    TransferDraft,
    TransferIntent,
    TransferSessionView,
    TransferStatus,
    TransferStep,
    TransferType,
)
from .authority import TransferAuthority
from .builder import (
    build_transfer_intent,
    change_transfer_type,
    is_submittable,
    reconcile_selection,
    strip_non_digits,
)
from .disclosure import DisclosureTimer
from .feedback import FeedbackExpiry
from .reconciler import BalanceAdjustment, apply_optimistic_transfer

logger = logging.getLogger(__name__)

OTP_PATTERN = re.compile(r"^\d{6}$")
OTP_LENGTH = 6

SUCCESS_NOTICE = "Transfer completed successfully!"
INTERRUPTED_NOTICE = "The request was interrupted. Please try again."

TransferSuccessCallback = Callable[[str, bool], None]
OptimisticUpdateCallback = Callable[[str, Optional[str], Decimal, TransferType], None]


class Trigger(str, Enum):
    SUBMIT_DETAILS = "submit_details"
    REJECT_DETAILS = "reject_details"
    INITIATE_SUCCEEDED = "initiate_succeeded"
    INITIATE_FAILED = "initiate_failed"
    SUBMIT_OTP = "submit_otp"
    REJECT_OTP = "reject_otp"
    EXECUTE_SUCCEEDED = "execute_succeeded"
    EXECUTE_FAILED = "execute_failed"
    ABANDON_CHALLENGE = "abandon_challenge"
    CANCEL = "cancel"
    DWELL_ELAPSED = "dwell_elapsed"


_D, _O = TransferStep.DETAILS, TransferStep.OTP
_IDLE = TransferStatus.IDLE
_PROCESSING = TransferStatus.PROCESSING
_SUCCESS = TransferStatus.SUCCESS
_ERROR = TransferStatus.ERROR

TRANSITIONS: dict[tuple[TransferStep, TransferStatus, Trigger], tuple[TransferStep, TransferStatus]] = {
    (_D, _IDLE, Trigger.SUBMIT_DETAILS): (_D, _PROCESSING),
    (_D, _ERROR, Trigger.SUBMIT_DETAILS): (_D, _PROCESSING),
    (_D, _IDLE, Trigger.REJECT_DETAILS): (_D, _ERROR),
    (_D, _ERROR, Trigger.REJECT_DETAILS): (_D, _ERROR),
    (_D, _PROCESSING, Trigger.INITIATE_SUCCEEDED): (_O, _IDLE),
    (_D, _PROCESSING, Trigger.INITIATE_FAILED): (_D, _ERROR),
    (_D, _ERROR, Trigger.DWELL_ELAPSED): (_D, _IDLE),
    (_O, _IDLE, Trigger.SUBMIT_OTP): (_O, _PROCESSING),
    (_O, _ERROR, Trigger.SUBMIT_OTP): (_O, _PROCESSING),
    (_O, _IDLE, Trigger.REJECT_OTP): (_O, _ERROR),
    (_O, _ERROR, Trigger.REJECT_OTP): (_O, _ERROR),
    (_O, _IDLE, Trigger.ABANDON_CHALLENGE): (_D, _ERROR),
    (_O, _ERROR, Trigger.ABANDON_CHALLENGE): (_D, _ERROR),
    (_O, _IDLE, Trigger.CANCEL): (_D, _IDLE),
    (_O, _ERROR, Trigger.CANCEL): (_D, _IDLE),
    (_O, _PROCESSING, Trigger.EXECUTE_SUCCEEDED): (_O, _SUCCESS),
    (_O, _PROCESSING, Trigger.EXECUTE_FAILED): (_O, _ERROR),
    (_O, _ERROR, Trigger.DWELL_ELAPSED): (_O, _IDLE),
    (_O, _SUCCESS, Trigger.DWELL_ELAPSED): (_D, _IDLE),
}


@dataclass
class TransferSession:
    step: TransferStep = TransferStep.DETAILS
    status: TransferStatus = TransferStatus.IDLE
    feedback_message: str = ""
    draft: TransferDraft = field(default_factory=TransferDraft)
    stored_intent: Optional[TransferIntent] = None
    entered_otp: str = ""
    error: Optional[TransferError] = None
    failed_attempts: int = 0
    challenge_issued_at: Optional[float] = None


class TransferStateMachine:
    def __init__(
        self,
        authority: TransferAuthority,
        accounts: Sequence[Account] = (),
        *,
        scheduler: Scheduler,
        settings: Optional[Settings] = None,
        on_transfer_success: Optional[TransferSuccessCallback] = None,
        on_optimistic_balance_update: Optional[OptimisticUpdateCallback] = None,
        transfer_type: TransferType = TransferType.INTERNAL,
    ) -> None:
        self.authority = authority
        self.scheduler = scheduler
        self.settings = settings or get_settings()
        self.on_transfer_success = on_transfer_success
        self.on_optimistic_balance_update = on_optimistic_balance_update

        self._accounts: tuple[Account, ...] = tuple(accounts)
        self._disclosure = DisclosureTimer(
            scheduler,
            window=self.settings.otp_display_ms / 1000,
            tick=self.settings.otp_tick_ms / 1000,
        )
        self._feedback = FeedbackExpiry(scheduler, dwell=self.settings.feedback_dwell_ms / 1000)
        self._session = TransferSession(
            draft=reconcile_selection(TransferDraft(transfer_type=transfer_type), self._accounts)
        )
        self._epoch = 0
        self._closed = False

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------
    @property
    def session(self) -> TransferSession:
        return self._session

    @property
    def state(self) -> tuple[TransferStep, TransferStatus]:
        return self._session.step, self._session.status

    @property
    def accounts(self) -> tuple[Account, ...]:
        return self._accounts

    @property
    def disclosure(self) -> DisclosureTimer:
        return self._disclosure

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def can_submit_details(self) -> bool:
        return (
            not self._closed
            and self._permits(Trigger.SUBMIT_DETAILS)
            and is_submittable(self._session.draft, self._accounts)
        )

    @property
    def can_submit_otp(self) -> bool:
        return (
            not self._closed
            and self._permits(Trigger.SUBMIT_OTP)
            and self._session.stored_intent is not None
            and OTP_PATTERN.fullmatch(self._session.entered_otp) is not None
        )

    def snapshot(self) -> TransferSessionView:
        session = self._session
        return TransferSessionView(
            step=session.step,
            status=session.status,
            feedback_message=session.feedback_message,
            draft=session.draft,
            stored_intent=session.stored_intent,
            entered_otp=session.entered_otp,
            disclosure=self._disclosure.snapshot(),
            can_submit_details=self.can_submit_details,
            can_submit_otp=self.can_submit_otp,
        )

    # ------------------------------------------------------------------
    # Input
    # ------------------------------------------------------------------
    def set_accounts(self, accounts: Sequence[Account]) -> None:
        self._accounts = tuple(accounts)
        self._session.draft = reconcile_selection(self._session.draft, self._accounts)

    def set_transfer_type(self, transfer_type: TransferType) -> bool:
        if not self._editable(TransferStep.DETAILS):
            return False
        self._session.draft = change_transfer_type(
            self._session.draft, transfer_type, self._accounts
        )
        return True

    def update_details(
        self,
        *,
        from_account_id: Optional[str] = None,
        to_account_id: Optional[str] = None,
        recipient_account_number: Optional[str] = None,
        amount: Optional[str] = None,
        description: Optional[str] = None,
    ) -> bool:
        if not self._editable(TransferStep.DETAILS):
            return False
        changes: dict[str, str] = {}
        if from_account_id is not None:
            changes["from_account_id"] = from_account_id
        if to_account_id is not None:
            changes["to_account_id"] = to_account_id
        if recipient_account_number is not None:
            changes["recipient_account_number"] = strip_non_digits(recipient_account_number)
        if amount is not None:
            changes["amount"] = amount
        if description is not None:
            changes["description"] = description
        draft = self._session.draft.model_copy(update=changes)
        self._session.draft = reconcile_selection(draft, self._accounts)
        return True

    def enter_otp(self, value: str) -> bool:
        if not self._editable(TransferStep.OTP):
            return False
        self._session.entered_otp = strip_non_digits(value)[:OTP_LENGTH]
        return True

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------
    async def submit_details(self) -> bool:
        if self._closed or not self._permits(Trigger.SUBMIT_DETAILS):
            return False

        try:
            intent = build_transfer_intent(self._session.draft, self._accounts)
        except ValidationError as exc:
            logger.info("transfer.details.invalid", extra={"field": exc.field})
            self._session.error = exc
            self._fire(Trigger.REJECT_DETAILS, feedback=str(exc))
            return True

        self._session.error = None
        self._fire(Trigger.SUBMIT_DETAILS, feedback="Initiating transfer...")
        epoch = self._epoch
        logger.info(
            "transfer.initiate.requested",
            extra={"transfer_type": intent.transfer_type.value, "amount": intent.amount},
        )
        try:
            challenge = await self.authority.initiate_transfer(intent)
        except asyncio.CancelledError:
            if not self._is_stale(epoch, "initiate"):
                logger.warning("transfer.initiate.interrupted")
                self._session.stored_intent = None
                self._session.error = ChallengeRejected(INTERRUPTED_NOTICE)
                self._fire(Trigger.INITIATE_FAILED, feedback=INTERRUPTED_NOTICE)
            raise
        except Exception as exc:
            if self._is_stale(epoch, "initiate"):
                return True
            error = self._rejection(exc, ChallengeRejected, "initiate", "Failed to initiate transfer.")
            self._session.stored_intent = None
            self._session.error = error
            self._fire(Trigger.INITIATE_FAILED, feedback=str(error))
            return True

        if self._is_stale(epoch, "initiate"):
            return True

        self._session.stored_intent = intent
        self._session.entered_otp = ""
        self._session.failed_attempts = 0
        self._session.challenge_issued_at = self.scheduler.time()
        if challenge.code:
            self._disclosure.start(challenge.code)
        self._fire(
            Trigger.INITIATE_SUCCEEDED,
            feedback=challenge.message or "OTP initiated. Please check your device.",
        )
        logger.info("transfer.initiate.succeeded", extra={"transfer_type": intent.transfer_type.value})
        return True

    async def submit_otp(self, otp: Optional[str] = None) -> bool:
        if self._closed or not self._permits(Trigger.SUBMIT_OTP):
            return False

        session = self._session
        if otp is not None:
            session.entered_otp = otp.strip()
        intent = session.stored_intent

        if intent is None or not OTP_PATTERN.fullmatch(session.entered_otp):
            error = ValidationError("otp", "Invalid OTP format or missing transfer details.")
            session.error = error
            self._fire(Trigger.REJECT_OTP, feedback=str(error))
            return True

        abandoned = self._abandon_reason()
        if abandoned is not None:
            self._abandon(abandoned)
            return True

        passcode = session.entered_otp
        session.error = None
        self._fire(Trigger.SUBMIT_OTP, feedback="Verifying OTP and completing transfer...")
        epoch = self._epoch
        logger.info("transfer.execute.requested", extra={"transfer_type": intent.transfer_type.value})
        try:
            receipt = await self.authority.execute_transfer(intent, passcode)
        except asyncio.CancelledError:
            # Not counted as a failed passcode attempt.
            if not self._is_stale(epoch, "execute"):
                logger.warning("transfer.execute.interrupted")
                session.error = ExecutionRejected(INTERRUPTED_NOTICE)
                self._fire(Trigger.EXECUTE_FAILED, feedback=INTERRUPTED_NOTICE)
            raise
        except Exception as exc:
            if self._is_stale(epoch, "execute"):
                return True
            error = self._rejection(
                exc, ExecutionRejected, "execute", "Transfer failed. Please check OTP or try again."
            )
            session.failed_attempts += 1
            session.error = error
            self._fire(Trigger.EXECUTE_FAILED, feedback=str(error))
            return True

        if self._is_stale(epoch, "execute"):
            return True

        adjustment = BalanceAdjustment.from_intent(intent)
        self._accounts = tuple(apply_optimistic_transfer(self._accounts, adjustment))
        session.entered_otp = ""
        session.stored_intent = None
        session.challenge_issued_at = None
        self._fire(
            Trigger.EXECUTE_SUCCEEDED,
            feedback=receipt.message or SUCCESS_NOTICE,
        )
        logger.info(
            "transfer.execute.succeeded",
            extra={"transfer_type": intent.transfer_type.value, "amount": intent.amount},
        )
        if self.on_optimistic_balance_update is not None:
            self.on_optimistic_balance_update(
                adjustment.from_account_id,
                adjustment.to_account_id,
                adjustment.amount,
                adjustment.transfer_type,
            )
        if self.on_transfer_success is not None:
            self.on_transfer_success(SUCCESS_NOTICE, False)
        return True

    def cancel(self) -> bool:
        if self._closed or not self._permits(Trigger.CANCEL):
            return False
        self._disclosure.cancel()
        self._clear_challenge()
        self._epoch += 1
        self._fire(Trigger.CANCEL, feedback="Transfer cancelled.")
        logger.info("transfer.cancelled")
        return True

    def close(self) -> None:
        """Tear the session down; no timer or late response may touch it afterwards."""
        if self._closed:
            return
        self._closed = True
        self._epoch += 1
        self._disclosure.cancel()
        self._feedback.cancel()
        self._session = TransferSession(draft=TransferDraft(transfer_type=self._session.draft.transfer_type))
        logger.debug("transfer.session.closed")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _permits(self, trigger: Trigger) -> bool:
        return (self._session.step, self._session.status, trigger) in TRANSITIONS

    def _editable(self, step: TransferStep) -> bool:
        return (
            not self._closed
            and self._session.step is step
            and self._session.status in (TransferStatus.IDLE, TransferStatus.ERROR)
        )

    def _fire(self, trigger: Trigger, feedback: Optional[str] = None) -> bool:
        session = self._session
        target = TRANSITIONS.get((session.step, session.status, trigger))
        if target is None:
            logger.debug(
                "transfer.transition.rejected",
                extra={
                    "step": session.step.value,
                    "status": session.status.value,
                    "trigger": trigger.value,
                },
            )
            return False
        session.step, session.status = target
        if feedback is not None:
            session.feedback_message = feedback

        self._feedback.cancel()
        if session.status in (TransferStatus.SUCCESS, TransferStatus.ERROR):
            self._feedback.schedule(self._on_dwell_elapsed)
        return True

    def _on_dwell_elapsed(self) -> None:
        if self._closed:
            return
        finished = self.state == (TransferStep.OTP, TransferStatus.SUCCESS)
        if not self._fire(Trigger.DWELL_ELAPSED, feedback=""):
            return
        if finished:
            self._reset()

    def _reset(self) -> None:
        self._epoch += 1
        self._disclosure.cancel()
        self._clear_challenge()
        session = self._session
        session.feedback_message = ""
        session.draft = reconcile_selection(
            TransferDraft(transfer_type=session.draft.transfer_type), self._accounts
        )

    def _clear_challenge(self) -> None:
        session = self._session
        session.stored_intent = None
        session.entered_otp = ""
        session.error = None
        session.failed_attempts = 0
        session.challenge_issued_at = None

    def _abandon_reason(self) -> Optional[str]:
        session = self._session
        max_attempts = self.settings.otp_max_attempts
        if max_attempts is not None and session.failed_attempts >= max_attempts:
            return "Too many incorrect passcodes. Please start the transfer again."
        ttl_ms = self.settings.otp_challenge_ttl_ms
        if ttl_ms is not None and session.challenge_issued_at is not None:
            if self.scheduler.time() - session.challenge_issued_at > ttl_ms / 1000:
                return "The passcode has expired. Please start the transfer again."
        return None

    def _abandon(self, message: str) -> None:
        logger.info(
            "transfer.challenge.abandoned",
            extra={"failed_attempts": self._session.failed_attempts},
        )
        self._disclosure.cancel()
        self._clear_challenge()
        self._session.error = ChallengeAbandoned(message)
        self._fire(Trigger.ABANDON_CHALLENGE, feedback=message)

    def _is_stale(self, epoch: int, phase: str) -> bool:
        if self._closed or epoch != self._epoch:
            logger.info("transfer.response.discarded", extra={"phase": phase})
            return True
        return False

    def _rejection(
        self,
        exc: Exception,
        error_cls: type[TransferError],
        phase: str,
        fallback: str,
    ) -> TransferError:
        if isinstance(exc, TransportError):
            logger.warning(f"transfer.{phase}.transport_error", extra={"error": str(exc)})
        elif isinstance(exc, AuthorityError):
            logger.info(
                f"transfer.{phase}.rejected",
                extra={"status_code": exc.status_code, "error": str(exc)},
            )
        else:
            logger.exception(f"transfer.{phase}.failed")
        error = error_cls(str(exc) or fallback)
        error.__cause__ = exc
        return error

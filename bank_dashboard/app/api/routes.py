from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Response, status

from ..core.config import Settings, get_settings
from ..core.dependencies import get_authority, get_session_registry
from ..core.errors import TransitionRejectedError
from ..core.scheduler import get_scheduler
from ..models import (
    AccountsResponse,
    DetailsUpdate,
    ExecuteRequest,
    OtpEntry,
    SessionCreate,
    TransferSessionView,
)
from ..services import TransferAuthority, TransferSessionRegistry


router = APIRouter(prefix="/transfer-sessions", tags=["transfers"])


def _require(accepted: bool, action: str) -> None:
    if not accepted:
        raise TransitionRejectedError(f"Cannot {action} in the current transfer state")


@router.post("", response_model=TransferSessionView, status_code=status.HTTP_201_CREATED)
async def open_session(
    payload: Optional[SessionCreate] = None,
    authority: TransferAuthority = Depends(get_authority),
    registry: TransferSessionRegistry = Depends(get_session_registry),
    settings: Settings = Depends(get_settings),
) -> TransferSessionView:
    payload = payload or SessionCreate()
    session = await registry.open(
        authority,
        get_scheduler(),
        settings=settings,
        transfer_type=payload.transfer_type,
    )
    return session.view()


@router.get("/{session_id}", response_model=TransferSessionView)
async def get_session(
    session_id: UUID,
    registry: TransferSessionRegistry = Depends(get_session_registry),
) -> TransferSessionView:
    return registry.get(session_id).view()


@router.patch("/{session_id}/details", response_model=TransferSessionView)
async def update_details(
    session_id: UUID,
    payload: DetailsUpdate,
    registry: TransferSessionRegistry = Depends(get_session_registry),
) -> TransferSessionView:
    session = registry.get(session_id)
    machine = session.machine
    if payload.transfer_type is not None:
        _require(machine.set_transfer_type(payload.transfer_type), "edit transfer details")
    _require(
        machine.update_details(
            from_account_id=payload.from_account_id,
            to_account_id=payload.to_account_id,
            recipient_account_number=payload.recipient_account_number,
            amount=payload.amount,
            description=payload.description,
        ),
        "edit transfer details",
    )
    return session.view()


@router.post("/{session_id}/initiate", response_model=TransferSessionView)
async def initiate_transfer(
    session_id: UUID,
    registry: TransferSessionRegistry = Depends(get_session_registry),
) -> TransferSessionView:
    session = registry.get(session_id)
    _require(await session.machine.submit_details(), "submit transfer details")
    return session.view()


@router.put("/{session_id}/otp", response_model=TransferSessionView)
async def enter_otp(
    session_id: UUID,
    payload: OtpEntry,
    registry: TransferSessionRegistry = Depends(get_session_registry),
) -> TransferSessionView:
    session = registry.get(session_id)
    _require(session.machine.enter_otp(payload.otp), "enter a passcode")
    return session.view()


@router.post("/{session_id}/execute", response_model=TransferSessionView)
async def execute_transfer(
    session_id: UUID,
    payload: Optional[ExecuteRequest] = None,
    registry: TransferSessionRegistry = Depends(get_session_registry),
) -> TransferSessionView:
    session = registry.get(session_id)
    otp = payload.otp if payload is not None else None
    _require(await session.machine.submit_otp(otp), "submit the passcode")
    return session.view()


@router.post("/{session_id}/cancel", response_model=TransferSessionView)
async def cancel_transfer(
    session_id: UUID,
    registry: TransferSessionRegistry = Depends(get_session_registry),
) -> TransferSessionView:
    session = registry.get(session_id)
    _require(session.machine.cancel(), "cancel the transfer")
    return session.view()


@router.get("/{session_id}/accounts", response_model=AccountsResponse)
async def list_accounts(
    session_id: UUID,
    refresh: bool = False,
    registry: TransferSessionRegistry = Depends(get_session_registry),
) -> AccountsResponse:
    session = registry.get(session_id)
    if refresh or session.book.stale:
        await session.refresh_accounts()
    return AccountsResponse(items=list(session.book.accounts), notice=session.book.notice)


@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def close_session(
    session_id: UUID,
    registry: TransferSessionRegistry = Depends(get_session_registry),
) -> Response:
    registry.close(session_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


__all__ = ["router"]

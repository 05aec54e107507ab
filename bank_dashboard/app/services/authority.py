"""Boundary to the REST backend that issues and verifies transfer passcodes."""
from __future__ import annotations

import logging
from typing import Any, Optional, Protocol

import httpx

from ..core.errors import AuthorityError, TransportError
from ..models import Account, ChallengeIssued, TransferIntent, TransferReceipt

logger = logging.getLogger(__name__)


class TransferAuthority(Protocol):
    async def list_accounts(self) -> list[Account]: ...

    async def initiate_transfer(self, intent: TransferIntent) -> ChallengeIssued: ...

    async def execute_transfer(self, intent: TransferIntent, otp: str) -> TransferReceipt: ...


class HttpTransferAuthority:
    """Talks to the dashboard backend over a shared ``httpx.AsyncClient``.

    Error bodies are reduced to a single human-readable message the way the
    dashboard shows them: the body's ``message`` if it has one, otherwise the
    raw text, otherwise the bare status code.
    """

    def __init__(self, client: httpx.AsyncClient, token: Optional[str] = None) -> None:
        self.client = client
        self.token = token

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[dict[str, Any]] = None,
    ) -> Any:
        logger.debug("authority.request", extra={"method": method, "path": path})
        try:
            response = await self.client.request(
                method, path, json=json, headers=self._headers()
            )
        except httpx.TransportError as exc:
            logger.warning(
                "authority.transport_error",
                extra={"method": method, "path": path, "error": str(exc)},
            )
            raise TransportError("Network error: Could not connect to the server.") from exc

        if response.status_code == 204:
            return None

        content_type = response.headers.get("content-type", "")
        if "application/json" in content_type:
            try:
                data = response.json()
            except ValueError as exc:
                raise AuthorityError(
                    "Failed to parse server JSON response.",
                    status_code=response.status_code,
                ) from exc
        elif response.is_success:
            data = {
                "message": response.text
                or f"Received status {response.status_code} with non-JSON body."
            }
        else:
            data = {"_rawText": response.text}

        if not response.is_success:
            message = None
            if isinstance(data, dict):
                message = data.get("message") or data.get("_rawText")
            message = message or f"HTTP error! status: {response.status_code}"
            logger.info(
                "authority.error_response",
                extra={"method": method, "path": path, "status_code": response.status_code},
            )
            raise AuthorityError(message, status_code=response.status_code, data=data)

        return data

    async def list_accounts(self) -> list[Account]:
        data = await self._request("GET", "/accounts")
        if isinstance(data, list):
            items = data
        elif isinstance(data, dict) and data.get("success") and isinstance(data.get("data"), list):
            items = data["data"]
        else:
            message = data.get("message") if isinstance(data, dict) else None
            raise AuthorityError(message or "Failed to fetch accounts.", data=data)
        return [Account.model_validate(item) for item in items]

    async def initiate_transfer(self, intent: TransferIntent) -> ChallengeIssued:
        data = await self._request(
            "POST", "/transactions/transfer/initiate", json=intent.to_payload()
        )
        return ChallengeIssued.model_validate(data or {})

    async def execute_transfer(self, intent: TransferIntent, otp: str) -> TransferReceipt:
        payload = {**intent.to_payload(), "otp": otp}
        data = await self._request("POST", "/transactions/transfer/execute", json=payload)
        return TransferReceipt.model_validate(data or {})

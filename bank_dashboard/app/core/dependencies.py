from __future__ import annotations

from functools import lru_cache
from typing import Optional

import httpx
from fastapi import Depends, Header

from ..services import HttpTransferAuthority, TransferAuthority, TransferSessionRegistry
from .config import get_settings


@lru_cache()
def get_session_registry() -> TransferSessionRegistry:
    return TransferSessionRegistry()


@lru_cache()
def get_http_client() -> httpx.AsyncClient:
    settings = get_settings()
    return httpx.AsyncClient(
        base_url=settings.api_base_url,
        timeout=settings.request_timeout,
    )


async def close_http_client() -> None:
    if get_http_client.cache_info().currsize:
        await get_http_client().aclose()
        get_http_client.cache_clear()


def bearer_token(authorization: Optional[str] = Header(default=None)) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() == "bearer" and token:
        return token.strip()
    return authorization.strip()


def get_authority(token: Optional[str] = Depends(bearer_token)) -> TransferAuthority:
    return HttpTransferAuthority(get_http_client(), token)

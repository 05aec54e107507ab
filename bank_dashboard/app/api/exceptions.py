from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ..core.errors import (
    AuthorityError,
    SessionNotFoundError,
    TransitionRejectedError,
    TransportError,
)


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(SessionNotFoundError)
    async def session_not_found_handler(
        request: Request, exc: SessionNotFoundError
    ) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(TransitionRejectedError)
    async def transition_rejected_handler(
        request: Request, exc: TransitionRejectedError
    ) -> JSONResponse:
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.exception_handler(AuthorityError)
    async def authority_error_handler(
        request: Request, exc: AuthorityError
    ) -> JSONResponse:
        return JSONResponse(status_code=502, content={"detail": str(exc)})

    @app.exception_handler(TransportError)
    async def transport_error_handler(
        request: Request, exc: TransportError
    ) -> JSONResponse:
        return JSONResponse(status_code=503, content={"detail": str(exc)})

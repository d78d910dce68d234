"""FastAPI middleware: request tracing, domain error translation, CORS.

Outermost first:
    RequestIDMiddleware     binds X-Request-ID (and the caller address, when
                            sent) to the structlog context of the request.
    ErrorHandlerMiddleware  turns EscrowError into ``{"error", "message"}``
                            JSON with a status from ``status_for``.
    CORSMiddleware          lets browser wallet frontends call the API.
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

import structlog
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from nft_escrow.domain.exceptions import (
    AlreadyClosedError,
    AlreadyLockedError,
    CancellationFailedError,
    DuplicateTradeError,
    EscrowError,
    EscrowIntegrityError,
    NotFullyDepositedError,
    ReentrantCallError,
    RegistryError,
    SettlementFailedError,
    TermsMismatchError,
    TradeNotFoundError,
    UnauthorizedCallerError,
    UnsupportedOperationError,
)

if TYPE_CHECKING:
    from fastapi import FastAPI, Request, Response

logger = structlog.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
CALLER_HEADER = "X-Caller-Address"


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Give every request a correlation id and bind it for structured logs."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        context = {"request_id": request_id}
        caller = request.headers.get(CALLER_HEADER)
        if caller:
            context["caller"] = caller

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(**context)

        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


# Checked in order; the first matching group wins.
_STATUS_GROUPS: tuple[tuple[tuple[type[EscrowError], ...], int], ...] = (
    ((TradeNotFoundError,), 404),
    ((UnauthorizedCallerError,), 403),
    (
        (
            AlreadyClosedError,
            AlreadyLockedError,
            DuplicateTradeError,
            NotFullyDepositedError,
            ReentrantCallError,
            TermsMismatchError,
            UnsupportedOperationError,
        ),
        409,
    ),
    ((SettlementFailedError, CancellationFailedError, EscrowIntegrityError), 502),
    ((RegistryError,), 422),
)


def status_for(exc: EscrowError) -> int:
    """HTTP status code for a domain error; 400 for anything not listed."""
    for types, status_code in _STATUS_GROUPS:
        if isinstance(exc, types):
            return status_code
    return 400


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Translate domain exceptions into structured JSON error responses."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        try:
            return await call_next(request)
        except EscrowError as exc:
            status_code = status_for(exc)
            log = logger.error if status_code >= 500 else logger.warning
            log("domain.error", code=exc.code, error=exc.message, status=status_code)
            return JSONResponse(
                status_code=status_code,
                content={"error": exc.code, "message": exc.message},
            )
        except Exception as exc:
            logger.exception("unhandled.error", error=str(exc))
            return JSONResponse(
                status_code=500,
                content={"error": "INTERNAL_ERROR", "message": "An unexpected error occurred"},
            )


def setup_middleware(app: FastAPI) -> None:
    """Register middleware; the last one added runs outermost."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(ErrorHandlerMiddleware)
    app.add_middleware(RequestIDMiddleware)

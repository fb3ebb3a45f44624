from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse

from refined_crm.context import get_correlation_id
from refined_crm.platform.security.errors import (
    AuthorizationError,
    Forbidden,
    InvalidTransition,
    OwnershipViolation,
    RestrictedFieldViolation,
    Unauthenticated,
)


@dataclass
class ErrorEnvelope:
    code: str
    message: str
    details: Any
    correlation_id: str | None


def error_response(
    request: Request,
    *,
    status_code: int,
    code: str,
    message: str,
    details: Any = None,
) -> JSONResponse:
    correlation_id = get_correlation_id() or getattr(request.state, "correlation_id", None)
    payload = ErrorEnvelope(code=code, message=message, details=details, correlation_id=correlation_id)
    return JSONResponse(status_code=status_code, content=asdict(payload))


def status_for(error: AuthorizationError) -> int:
    match error:
        case Unauthenticated():
            return status.HTTP_401_UNAUTHORIZED
        case InvalidTransition():
            return status.HTTP_409_CONFLICT
        case Forbidden() | OwnershipViolation() | RestrictedFieldViolation():
            return status.HTTP_403_FORBIDDEN
        case _:
            return status.HTTP_403_FORBIDDEN


def failure_response(request: Request, exc: HTTPException | AuthorizationError, *, code: str) -> JSONResponse:
    """Render access decisions with their reason code and other failures with the route's code."""

    if isinstance(exc, AuthorizationError):
        response = error_response(
            request,
            status_code=status_for(exc),
            code=exc.reason_code,
            message=exc.message,
            details=exc.details or None,
        )
        if isinstance(exc, Unauthenticated):
            response.headers["WWW-Authenticate"] = "Bearer"
        return response
    return error_response(
        request,
        status_code=exc.status_code,
        code=code,
        message=str(exc.detail),
        details=exc.detail,
    )


async def authorization_error_handler(request: Request, exc: AuthorizationError) -> JSONResponse:
    return failure_response(request, exc, code=exc.reason_code)

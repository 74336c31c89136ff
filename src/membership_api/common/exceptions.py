"""Centralized FastAPI exception handlers with structured logging."""

from __future__ import annotations

import logging

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from membership_api.core.errors import (
    AuthenticationError,
    InvalidProvenanceError,
    InvalidTransitionError,
    MembershipError,
    NotFoundError,
    ProtectedRoleError,
    RoleConflictError,
    RoleInUseError,
    UnauthorizedError,
)

from .logging import log_context

_UNHANDLED_LOGGER = logging.getLogger("membership_api.errors")
_HTTP_LOGGER = logging.getLogger("membership_api.http")

# Order matters: the first matching class wins.
DOMAIN_STATUS_CODES: tuple[tuple[type[MembershipError], int], ...] = (
    (AuthenticationError, status.HTTP_401_UNAUTHORIZED),
    (UnauthorizedError, status.HTTP_403_FORBIDDEN),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ProtectedRoleError, status.HTTP_409_CONFLICT),
    (RoleInUseError, status.HTTP_409_CONFLICT),
    (RoleConflictError, status.HTTP_409_CONFLICT),
    (InvalidTransitionError, status.HTTP_409_CONFLICT),
    (InvalidProvenanceError, status.HTTP_422_UNPROCESSABLE_ENTITY),
)


def status_for(exc: MembershipError) -> int:
    for error_type, status_code in DOMAIN_STATUS_CODES:
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_400_BAD_REQUEST


def domain_exception_handler(request: Request, exc: MembershipError) -> JSONResponse:
    """Translate domain errors into JSON responses.

    Authorization failures always render the bare ``forbidden`` detail.
    """
    status_code = status_for(exc)
    detail = "forbidden" if isinstance(exc, UnauthorizedError) else str(exc)
    headers = {"WWW-Authenticate": "Header"} if status_code == 401 else None
    return JSONResponse(status_code=status_code, content={"detail": detail}, headers=headers)


def request_validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": "Invalid request", "errors": _plain_errors(exc)},
    )


def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Handler for HTTPException instances.

    4xx responses are returned without logging; 5xx responses are logged.
    """
    if exc.status_code >= 500:
        _HTTP_LOGGER.error(
            "http_exception",
            extra=log_context(
                path=str(request.url.path),
                method=request.method,
                status_code=exc.status_code,
                detail=exc.detail,
            ),
        )
    detail = "Internal server error" if exc.status_code == 500 else exc.detail
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": detail},
        headers=getattr(exc, "headers", None),
    )


def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler: HTTP 500 plus an ERROR log with the stack trace."""
    _UNHANDLED_LOGGER.exception(
        "unhandled_exception",
        extra=log_context(
            path=str(request.url.path),
            method=request.method,
            exception_type=type(exc).__name__,
        ),
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(MembershipError, domain_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(
        RequestValidationError, request_validation_exception_handler  # type: ignore[arg-type]
    )
    app.add_exception_handler(HTTPException, http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, unhandled_exception_handler)


def _plain_errors(exc: RequestValidationError) -> list[dict[str, object]]:
    plain: list[dict[str, object]] = []
    for error in exc.errors():
        plain.append(
            {
                "loc": [str(part) for part in error.get("loc", ())],
                "msg": str(error.get("msg", "")),
                "type": str(error.get("type", "")),
            }
        )
    return plain


__all__ = [
    "DOMAIN_STATUS_CODES",
    "domain_exception_handler",
    "http_exception_handler",
    "register_exception_handlers",
    "request_validation_exception_handler",
    "status_for",
    "unhandled_exception_handler",
]

"""
Exception handlers - Map domain errors to HTTP responses.

Every failure, including request validation and framework HTTP errors, is
rendered as ``{"kind": ..., "detail": ...}`` with the
domain error's stable kind and message. Dependency failures and unexpected
exceptions are logged with their cause and answered with a generic message.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from marketplace_identity.domain.exceptions import (
    AuthError,
    ConflictError,
    DependencyError,
    IdentityError,
    IncorrectCurrentPassword,
    NotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)

# Most specific class first
_STATUS_BY_ERROR: list[tuple[type[IdentityError], int]] = [
    (IncorrectCurrentPassword, status.HTTP_400_BAD_REQUEST),
    (ValidationError, 422),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ConflictError, status.HTTP_409_CONFLICT),
    (AuthError, status.HTTP_401_UNAUTHORIZED),
    (DependencyError, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def status_for(error: IdentityError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def identity_error_handler(request: Request, exc: IdentityError) -> JSONResponse:
    status_code = status_for(exc)
    if isinstance(exc, DependencyError):
        logger.error(
            "%s %s failed on a dependency", request.method, request.url.path, exc_info=exc
        )
    return JSONResponse(
        status_code=status_code,
        content={"kind": exc.kind, "detail": exc.message},
    )


def _describe_validation_errors(exc: RequestValidationError) -> str:
    """Field and reason for each error; submitted values are never echoed."""
    parts = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error["loc"] if part != "body")
        parts.append(f"{field}: {error['msg']}" if field else error["msg"])
    return "; ".join(parts)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content={"kind": ValidationError.kind, "detail": _describe_validation_errors(exc)},
    )


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code in (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN):
        kind = AuthError.kind
    elif exc.status_code == status.HTTP_404_NOT_FOUND:
        kind = NotFoundError.kind
    else:
        kind = "http_error"
    return JSONResponse(
        status_code=exc.status_code,
        content={"kind": kind, "detail": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"kind": "server_error", "detail": "Server error"},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(IdentityError, identity_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

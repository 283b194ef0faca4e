"""Exception handlers.

Maps the domain error hierarchy onto HTTP responses of the form
``{error_code, message, details, request_id}``.
"""

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from storefront.domain.exceptions import (
    DomainError,
    ExternalProviderError,
    InvalidCallbackTokenError,
    NotFoundError,
    PreconditionFailed,
    ReplayRejected,
    StaleWebhookError,
    TrackingAccessDenied,
    ValidationError,
)

logger = structlog.get_logger()


def status_code_for(exc: DomainError) -> int:
    """Pick the HTTP status for a domain error."""
    if isinstance(exc, InvalidCallbackTokenError):
        return status.HTTP_403_FORBIDDEN
    if isinstance(exc, StaleWebhookError):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(exc, ReplayRejected):
        return status.HTTP_403_FORBIDDEN
    if isinstance(exc, TrackingAccessDenied):
        return status.HTTP_401_UNAUTHORIZED if exc.missing else status.HTTP_404_NOT_FOUND
    if isinstance(exc, ValidationError):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(exc, NotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, PreconditionFailed):
        return status.HTTP_409_CONFLICT
    if isinstance(exc, ExternalProviderError):
        return status.HTTP_502_BAD_GATEWAY
    return status.HTTP_400_BAD_REQUEST


def error_body(
    request: Request,
    error_code: str,
    message: str,
    details: dict | list | None = None,
) -> dict:
    """Build the standard error payload."""
    return {
        "error_code": error_code,
        "message": message,
        "details": details if details is not None else {},
        "request_id": getattr(request.state, "request_id", None),
    }


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    """Handle domain exceptions with consistent format."""
    status_code = status_code_for(exc)
    log = logger.warning if status_code < 500 else logger.error
    log(
        "Request failed",
        path=request.url.path,
        method=request.method,
        status_code=status_code,
        error_code=exc.error_code,
        error=exc.message,
    )
    return JSONResponse(
        status_code=status_code,
        content=error_body(request, exc.error_code, exc.message, exc.details),
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle HTTP exceptions with consistent format."""
    detail = exc.detail
    if isinstance(detail, dict):
        error_code = detail.get("error_code", "ERROR")
        message = detail.get("message", str(detail))
        details = detail.get("details", {})
    else:
        error_code = "ERROR"
        message = str(detail)
        details = {}

    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(request, error_code, message, details),
        headers=getattr(exc, "headers", None),
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed request bodies as validation errors."""
    errors = [
        {"field": ".".join(str(part) for part in error.get("loc", ())), "message": error.get("msg", "")}
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body(request, ValidationError.error_code, "Invalid request", {"errors": errors}),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle uncaught exceptions with consistent format."""
    logger.exception(
        "Unhandled exception in handler",
        path=request.url.path,
        method=request.method,
        error=str(exc),
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body(request, "INTERNAL_ERROR", "An internal error occurred"),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Install all exception handlers on the application."""
    app.add_exception_handler(DomainError, domain_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

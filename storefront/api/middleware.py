"""Request middleware.

Every request is tagged with a correlation id and the API surface it hit
(storefront, admin, webhook or ops), both bound into the structlog context
so service and provider-client log lines can be joined per request. Admin
paths additionally require the admin API key as a bearer token.
"""

import hmac
import re
import time
from typing import Callable
from uuid import uuid4

import structlog
from fastapi import FastAPI, Request, Response, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from storefront.api.errors import error_body
from storefront.infrastructure.config import get_settings

logger = structlog.get_logger()

REQUEST_ID_HEADER = "X-Request-ID"
ADMIN_PREFIX = "/admin"
WEBHOOK_PREFIX = "/webhooks"
OPS_PATHS = ("/health", "/ready")

# Caller-supplied ids that do not match are replaced with a fresh UUID.
_REQUEST_ID_PATTERN = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")


def surface_for(path: str) -> str:
    """Name the API surface a path belongs to."""
    path = path.rstrip("/") or "/"
    if path == ADMIN_PREFIX or path.startswith(ADMIN_PREFIX + "/"):
        return "admin"
    if path.startswith(WEBHOOK_PREFIX + "/"):
        return "webhook"
    if path in OPS_PATHS:
        return "ops"
    return "storefront"


def resolve_request_id(request: Request) -> str:
    supplied = request.headers.get(REQUEST_ID_HEADER, "")
    return supplied if _REQUEST_ID_PATTERN.match(supplied) else str(uuid4())


def bearer_token(header: str | None) -> str | None:
    """Return the token of an ``Authorization: Bearer <token>`` header, if well formed."""
    scheme, _, token = (header or "").partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token:
        return None
    return token


# ============================================================================
# Request Context
# ============================================================================


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Correlates a request's log lines and reports how it went.

    The id is echoed in ``X-Request-ID`` and lands in every error body.
    Health and readiness checks are logged at debug level.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = resolve_request_id(request)
        surface = surface_for(request.url.path)
        request.state.request_id = request_id
        structlog.contextvars.bind_contextvars(request_id=request_id, surface=surface)

        started = time.perf_counter()
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
        try:
            response = await call_next(request)
            status_code = response.status_code
        finally:
            log = logger.debug if surface == "ops" else logger.info
            log(
                "Request handled",
                method=request.method,
                path=request.url.path,
                status_code=status_code,
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
            )
            structlog.contextvars.unbind_contextvars("request_id", "surface")

        response.headers[REQUEST_ID_HEADER] = request_id
        return response


# ============================================================================
# Admin Authentication
# ============================================================================


class AdminAuthMiddleware(BaseHTTPMiddleware):
    """Requires ``Authorization: Bearer <admin_api_key>`` on admin paths.

    Storefront and guest tracking routes are public. Webhook routes are
    public here too; their handlers check the provider callback tokens.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if surface_for(request.url.path) != "admin":
            return await call_next(request)

        header = request.headers.get("Authorization")
        token = bearer_token(header)
        if token is None:
            if header is None:
                return self._reject(request, "UNAUTHORIZED", "Missing Authorization header")
            return self._reject(
                request, "UNAUTHORIZED", "Invalid Authorization header format. Use 'Bearer <api_key>'"
            )

        admin_key = get_settings().admin_api_key
        if not admin_key or not hmac.compare_digest(token.encode(), admin_key.encode()):
            return self._reject(request, "INVALID_API_KEY", "Invalid API key")

        return await call_next(request)

    @staticmethod
    def _reject(request: Request, error_code: str, message: str) -> JSONResponse:
        logger.warning("Admin request rejected", error_code=error_code, method=request.method, path=request.url.path)
        return JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED,
            content=error_body(request, error_code, message),
            headers={"WWW-Authenticate": "Bearer"},
        )


# ============================================================================
# Unhandled Errors
# ============================================================================


class UnhandledErrorMiddleware(BaseHTTPMiddleware):
    """Answers exceptions no exception handler claimed with a 500 error body."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)
        except Exception:
            logger.exception("Unhandled error", method=request.method, path=request.url.path)
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content=error_body(request, "INTERNAL_ERROR", "An internal error occurred"),
            )


def setup_middleware(app: FastAPI) -> None:
    """Install the request middleware.

    Starlette runs the last added middleware first, so the request context
    wraps authentication, which wraps the unhandled error fallback.
    """
    app.add_middleware(UnhandledErrorMiddleware)
    app.add_middleware(AdminAuthMiddleware)
    app.add_middleware(RequestContextMiddleware)

"""HTTP middleware for response hardening and request logging."""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from typing import Any

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from capsuleos.core.logging import clear_request_id, set_request_id

REQUEST_ID_HEADER = "X-Request-ID"

SECURITY_HEADERS: dict[str, str] = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
}

# Type alias for the call_next function
CallNext = Callable[[Request], Awaitable[Response]]

logger = structlog.get_logger()


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add fixed security headers to every response."""

    def __init__(self, app: Any, headers: dict[str, str] | None = None) -> None:
        super().__init__(app)
        self.headers = dict(SECURITY_HEADERS if headers is None else headers)

    async def dispatch(self, request: Request, call_next: CallNext) -> Response:
        response = await call_next(request)
        for name, value in self.headers.items():
            response.headers.setdefault(name, value)
        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log one line per request with a correlation id.

    An incoming ``X-Request-ID`` is reused; otherwise one is generated. The id
    is bound for the duration of the request so every log event carries it,
    and echoed back in the response.
    """

    async def dispatch(self, request: Request, call_next: CallNext) -> Response:
        request_id = set_request_id(request.headers.get(REQUEST_ID_HEADER))
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "request_failed",
                method=request.method,
                path=request.url.path,
            )
            clear_request_id()
            raise

        duration_ms = round((time.perf_counter() - start) * 1000, 1)
        # Health probes are too frequent for INFO
        log = logger.debug if request.url.path == "/health" else logger.info
        log(
            "request",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=duration_ms,
        )
        response.headers[REQUEST_ID_HEADER] = request_id
        clear_request_id()
        return response

"""Request logging middleware."""
import logging
import time
from typing import Callable
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

logger = logging.getLogger("chatgate.server")
SENSITIVE_FIELDS = frozenset({"authorization", "x-api-key", "cookie", "credentials", "pairingcode", "qr"})


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs each request and its outcome without credentials."""

    def __init__(self, app: ASGIApp) -> None:
        super().__init__(app)

    async def dispatch(self, request: Request, call_next: Callable[[Request], Response]) -> Response:
        start_time = time.perf_counter()
        client = request.client.host if request.client else "unknown"
        params = sanitize_dict(dict(request.query_params))
        logger.info("Request: %s %s client=%s params=%s", request.method, request.url.path, client, params)

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            "Response: %s %s status=%d duration=%.2fms",
            request.method, request.url.path, response.status_code, duration_ms,
        )
        return response


def sanitize_dict(data: dict) -> dict:
    """Replace sensitive values with a placeholder, recursively."""
    result = {}
    for key, value in data.items():
        if key.lower() in SENSITIVE_FIELDS:
            result[key] = "[REDACTED]"
        elif isinstance(value, dict):
            result[key] = sanitize_dict(value)
        else:
            result[key] = value
    return result

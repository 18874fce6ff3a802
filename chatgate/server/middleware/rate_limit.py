"""Per-client request rate limiting."""
import time
from collections import defaultdict
from typing import Callable, Iterable
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

WINDOW_SECONDS = 60


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Sliding one-minute window per client IP.

    Paths in ``exempt_paths`` (health probes) are never counted.
    """

    def __init__(self, app: ASGIApp, requests_per_minute: int = 120, exempt_paths: Iterable[str] = ()) -> None:
        super().__init__(app)
        self._requests_per_minute = requests_per_minute
        self._exempt = frozenset(exempt_paths)
        self._request_times: dict[str, list[float]] = defaultdict(list)

    async def dispatch(self, request: Request, call_next: Callable[[Request], Response]) -> Response:
        if request.url.path in self._exempt:
            return await call_next(request)
        client_ip = request.client.host if request.client else "unknown"
        now = time.time()
        window_start = now - WINDOW_SECONDS

        times = [t for t in self._request_times[client_ip] if t > window_start]
        self._request_times[client_ip] = times

        if len(times) >= self._requests_per_minute:
            retry_after = max(1, int(min(times) + WINDOW_SECONDS - now))
            return JSONResponse(
                status_code=429,
                content={
                    "success": False,
                    "error": "RATE_LIMITED",
                    "message": "Rate limit exceeded",
                    "details": {"retry_after": retry_after},
                },
                headers={"Retry-After": str(retry_after)},
            )

        times.append(now)
        response = await call_next(request)

        remaining = self._requests_per_minute - len(times)
        response.headers["X-RateLimit-Limit"] = str(self._requests_per_minute)
        response.headers["X-RateLimit-Remaining"] = str(max(remaining, 0))
        return response

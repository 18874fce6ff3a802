"""Server middleware."""
from chatgate.server.middleware.rate_limit import RateLimitMiddleware
from chatgate.server.middleware.logging import RequestLoggingMiddleware

__all__ = ["RateLimitMiddleware", "RequestLoggingMiddleware"]

"""Error taxonomy shared by the session core and the HTTP layer."""
from typing import Optional, Any


class GatewayError(Exception):
    status_code: int = 500
    error_code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class InvalidArgumentError(GatewayError):
    status_code = 400
    error_code = "INVALID_ARGUMENT"


class UnauthorizedError(GatewayError):
    status_code = 401
    error_code = "UNAUTHORIZED"


class InsufficientBalanceError(GatewayError):
    status_code = 402
    error_code = "INSUFFICIENT_BALANCE"

    def __init__(self, message: str = "Insufficient balance", required: Optional[int] = None, available: Optional[int] = None) -> None:
        details = None
        if required is not None:
            details = {"required": required, "available": available}
        super().__init__(message, details)
        self.required = required
        self.available = available


class NotFoundError(GatewayError):
    """Session absent or owned by someone else.

    Both cases share one error so callers cannot probe for sessions that
    belong to other owners.
    """

    status_code = 404
    error_code = "NOT_FOUND"

    def __init__(self, message: str = "Session not found", session_id: Optional[str] = None) -> None:
        super().__init__(message, {"session_id": session_id} if session_id else None)
        self.session_id = session_id


class RecipientNotFoundError(GatewayError):
    status_code = 404
    error_code = "RECIPIENT_NOT_FOUND"

    def __init__(self, recipient: str) -> None:
        super().__init__(f"Number {recipient} is not registered on the network", {"recipient": recipient})
        self.recipient = recipient


class NotConnectedError(GatewayError):
    status_code = 503
    error_code = "NOT_CONNECTED"

    def __init__(self, session_id: str, status: str) -> None:
        super().__init__("Session is not connected", {"session_id": session_id, "status": status})
        self.session_id = session_id
        self.status = status


class UpstreamFailureError(GatewayError):
    status_code = 503
    error_code = "UPSTREAM_FAILURE"

"""Exception types raised by chat network adapters."""
from typing import Optional


class ChatNetworkError(Exception):
    """A request to the chat network failed or the connection is unusable."""
    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ConnectionClosedError(ChatNetworkError):
    """Operation attempted on a handle that has already been closed."""
    pass

"""Boundary between the gateway and a chat network implementation.

The session core depends only on these protocols. Concrete adapters
(``chatgate.network.bridge``) and the in-memory fakes used by the test
suite implement them.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Protocol

from chatgate.network.events import NetworkEvent

EventListener = Callable[[NetworkEvent], Awaitable[None]]


class PresenceState(Enum):
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"
    COMPOSING = "composing"
    RECORDING = "recording"
    PAUSED = "paused"


class PictureQuality(Enum):
    IMAGE = "image"
    PREVIEW = "preview"


@dataclass(frozen=True)
class IdentityCheck:
    """Result of asking the network whether an identity is registered."""
    exists: bool
    canonical_id: Optional[str] = None
    is_business: bool = False
    verified_name: Optional[str] = None


@dataclass(frozen=True)
class BusinessProfile:
    description: Optional[str] = None
    category: Optional[str] = None
    email: Optional[str] = None
    website: list[str] = field(default_factory=list)
    address: Optional[str] = None
    business_hours: Optional[dict[str, Any]] = None


@dataclass(frozen=True)
class OpenOptions:
    """Per-connection options passed to ``ChatNetworkClient.open``."""
    session_id: str
    browser: tuple[str, str, str] = ("chatgate", "Chrome", "1.0.0")
    sync_full_history: bool = True
    mark_online_on_connect: bool = False


class ConnectionHandle(Protocol):
    """A live duplex connection to the chat network.

    Events are delivered sequentially, in emission order, to the listener
    registered with ``listen``. Delivery starts when the listener is
    registered; nothing is dropped before that point.
    """

    @property
    def self_id(self) -> Optional[str]: ...

    def listen(self, listener: EventListener) -> None: ...

    async def request_pairing_code(self, phone_number: str) -> str: ...

    async def check_identity_exists(self, identity: str) -> IdentityCheck: ...

    async def fetch_status_text(self, identity: str) -> Optional[str]: ...

    async def fetch_profile_picture_url(self, identity: str, quality: PictureQuality) -> Optional[str]: ...

    async def fetch_business_profile(self, identity: str) -> Optional[BusinessProfile]: ...

    async def fetch_all_groups(self) -> list[dict[str, Any]]: ...

    async def send_message(self, identity: str, content: dict[str, Any]) -> dict[str, Any]: ...

    async def subscribe_presence(self, identity: str) -> None: ...

    async def send_presence(self, identity: str, state: PresenceState) -> None: ...

    async def logout(self) -> None: ...

    async def close(self) -> None: ...


class ChatNetworkClient(Protocol):
    """Factory for connection handles."""

    async def open(self, credentials: dict[str, Any], options: OpenOptions) -> ConnectionHandle: ...

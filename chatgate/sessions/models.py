"""In-memory session state owned by the supervisor."""
from collections import OrderedDict, deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from chatgate.network.base import ConnectionHandle
from chatgate.sessions.timer import ReconnectTimer


class SessionStatus(Enum):
    """Connection state machine states."""
    CONNECTING = "connecting"
    QR_PENDING = "qr_pending"
    CODE_PENDING = "code_pending"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


class PairingMethod(Enum):
    QR = "qr"
    CODE = "code"


@dataclass(frozen=True)
class SessionKey:
    """Identifies a session's credential directory."""
    owner_id: str
    session_id: str

    def __post_init__(self) -> None:
        for name in ("owner_id", "session_id"):
            value = getattr(self, name)
            if not value:
                raise ValueError(f"{name} cannot be empty")
            if "/" in value or "\\" in value or value in (".", ".."):
                raise ValueError(f"{name} is not a valid path component: {value!r}")


class BoundedMap(OrderedDict):
    """Insertion-ordered map that evicts its oldest entries past ``maxlen``.

    Upserting an existing key merges the new fields into the stored
    record and moves it to the newest position.
    """

    def __init__(self, maxlen: int) -> None:
        super().__init__()
        self.maxlen = maxlen

    def upsert(self, key: str, record: dict[str, Any]) -> None:
        if key in self:
            merged = {**self[key], **record}
            self.move_to_end(key)
            self[key] = merged
        else:
            self[key] = dict(record)
        while len(self) > self.maxlen:
            self.popitem(last=False)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class SessionState:
    """Live state of one chat network session.

    ``owner_id``, ``session_id`` and ``created_at`` never change after
    creation. ``connection_handle`` is replaced, never mutated, on every
    reconnect.
    """

    session_id: str
    owner_id: str
    pairing_method: PairingMethod
    phone_number: Optional[str] = None
    connection_handle: Optional[ConnectionHandle] = None
    status: SessionStatus = SessionStatus.CONNECTING
    qr_payload: Optional[str] = None
    pairing_code: Optional[str] = None
    remote_number: Optional[str] = None
    profile_picture_url: Optional[str] = None
    reconnect_attempts: int = 0
    reconnect_timer: ReconnectTimer = field(default_factory=ReconnectTimer)
    desired_connected: bool = True
    created_at: datetime = field(default_factory=_utcnow)
    last_activity_at: Optional[datetime] = None
    contacts: BoundedMap = field(default_factory=lambda: BoundedMap(5000))
    chats: BoundedMap = field(default_factory=lambda: BoundedMap(1000))
    recent_messages: deque = field(default_factory=lambda: deque(maxlen=1000))

    @property
    def key(self) -> SessionKey:
        return SessionKey(self.owner_id, self.session_id)

    def touch(self) -> None:
        self.last_activity_at = _utcnow()

    def clear_pairing(self) -> None:
        self.qr_payload = None
        self.pairing_code = None

    def summary(self) -> "SessionSummary":
        return SessionSummary(
            session_id=self.session_id,
            owner_id=self.owner_id,
            status=self.status,
            pairing_method=self.pairing_method,
            remote_number=self.remote_number,
            profile_picture_url=self.profile_picture_url,
            qr_payload=self.qr_payload,
            pairing_code=self.pairing_code,
            reconnect_attempts=self.reconnect_attempts,
            desired_connected=self.desired_connected,
            created_at=self.created_at,
            last_activity_at=self.last_activity_at,
        )


@dataclass(frozen=True)
class SessionSummary:
    """Read-only snapshot of a session, safe to hand to callers."""

    session_id: str
    owner_id: str
    status: SessionStatus
    pairing_method: PairingMethod
    remote_number: Optional[str]
    profile_picture_url: Optional[str]
    qr_payload: Optional[str]
    pairing_code: Optional[str]
    reconnect_attempts: int
    desired_connected: bool
    created_at: datetime
    last_activity_at: Optional[datetime]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.session_id,
            "status": self.status.value,
            "pairingMethod": self.pairing_method.value,
            "phoneNumber": self.remote_number,
            "profilePicture": self.profile_picture_url,
            "qr": self.qr_payload,
            "pairingCode": self.pairing_code,
            "reconnectAttempts": self.reconnect_attempts,
            "createdAt": self.created_at.isoformat(),
            "lastActivity": self.last_activity_at.isoformat() if self.last_activity_at else None,
        }


@dataclass(frozen=True)
class PairingResult:
    """What ``create``/``restart`` could hand back within the bootstrap window."""

    session_id: str
    pairing_method: PairingMethod
    status: SessionStatus
    qr_payload: Optional[str] = None
    pairing_code: Optional[str] = None

    @property
    def ready(self) -> bool:
        return bool(self.qr_payload or self.pairing_code) or self.status is SessionStatus.CONNECTED

    def to_dict(self) -> dict[str, Any]:
        return {
            "connectionId": self.session_id,
            "pairingMethod": self.pairing_method.value,
            "status": self.status.value,
            "qr": self.qr_payload,
            "pairingCode": self.pairing_code,
        }

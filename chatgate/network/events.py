"""Typed events emitted by a chat network connection.

Every event the network can deliver is one of the dataclasses below,
tagged with an ``EventKind``. ``decode_event`` turns the loosely shaped
``(name, payload)`` pairs produced by the bridge into these types so the
rest of the gateway never inspects raw dictionaries to decide what
happened.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Optional, Union

from chatgate.network.disconnect import DisconnectCause, parse_cause

logger = logging.getLogger(__name__)


class EventKind(Enum):
    """Closed set of event kinds a connection can emit."""
    CREDENTIALS_CHANGED = "credentials_changed"
    QR_CODE = "qr_code"
    CONNECTION_UPDATE = "connection_update"
    HISTORY_SYNC = "history_sync"
    MESSAGES_UPSERT = "messages_upsert"
    MESSAGES_UPDATE = "messages_update"
    MESSAGES_DELETE = "messages_delete"
    PRESENCE_UPDATE = "presence_update"
    CONTACTS_UPSERT = "contacts_upsert"
    CHATS_UPSERT = "chats_upsert"
    GROUPS_UPSERT = "groups_upsert"
    GROUPS_UPDATE = "groups_update"
    BLOCKLIST_CHANGED = "blocklist_changed"
    INCOMING_CALL = "incoming_call"


class ConnectionState(Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSE = "close"


@dataclass(frozen=True)
class CredentialsChanged:
    """Partial credential update; keys replace those already stored."""
    kind: ClassVar[EventKind] = EventKind.CREDENTIALS_CHANGED
    credentials: dict[str, Any]


@dataclass(frozen=True)
class QrCodeAvailable:
    kind: ClassVar[EventKind] = EventKind.QR_CODE
    payload: str


@dataclass(frozen=True)
class ConnectionUpdate:
    """Connection state transition.

    ``state`` is None for updates that only carry a QR rotation or
    other side information. ``close_cause`` is only meaningful when
    ``state`` is CLOSE; ``raw_cause`` keeps whatever the network sent.
    """
    kind: ClassVar[EventKind] = EventKind.CONNECTION_UPDATE
    state: Optional[ConnectionState] = None
    qr: Optional[str] = None
    close_cause: Optional[DisconnectCause] = None
    raw_cause: Optional[Union[int, str]] = None


@dataclass(frozen=True)
class HistorySync:
    kind: ClassVar[EventKind] = EventKind.HISTORY_SYNC
    chats: list[dict[str, Any]] = field(default_factory=list)
    contacts: list[dict[str, Any]] = field(default_factory=list)
    messages: list[dict[str, Any]] = field(default_factory=list)
    is_latest: bool = False


@dataclass(frozen=True)
class MessagesUpsert:
    kind: ClassVar[EventKind] = EventKind.MESSAGES_UPSERT
    messages: list[dict[str, Any]] = field(default_factory=list)
    upsert_type: str = "notify"


@dataclass(frozen=True)
class MessagesUpdate:
    kind: ClassVar[EventKind] = EventKind.MESSAGES_UPDATE
    updates: list[dict[str, Any]] = field(default_factory=list)


@dataclass(frozen=True)
class MessagesDelete:
    kind: ClassVar[EventKind] = EventKind.MESSAGES_DELETE
    keys: list[dict[str, Any]] = field(default_factory=list)


@dataclass(frozen=True)
class PresenceUpdate:
    kind: ClassVar[EventKind] = EventKind.PRESENCE_UPDATE
    chat_id: str = ""
    presences: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ContactsUpsert:
    kind: ClassVar[EventKind] = EventKind.CONTACTS_UPSERT
    contacts: list[dict[str, Any]] = field(default_factory=list)


@dataclass(frozen=True)
class ChatsUpsert:
    kind: ClassVar[EventKind] = EventKind.CHATS_UPSERT
    chats: list[dict[str, Any]] = field(default_factory=list)


@dataclass(frozen=True)
class GroupsUpsert:
    kind: ClassVar[EventKind] = EventKind.GROUPS_UPSERT
    groups: list[dict[str, Any]] = field(default_factory=list)


@dataclass(frozen=True)
class GroupsUpdate:
    kind: ClassVar[EventKind] = EventKind.GROUPS_UPDATE
    updates: list[dict[str, Any]] = field(default_factory=list)


@dataclass(frozen=True)
class BlocklistChanged:
    kind: ClassVar[EventKind] = EventKind.BLOCKLIST_CHANGED
    blocklist: list[str] = field(default_factory=list)
    change_type: str = "set"


@dataclass(frozen=True)
class IncomingCall:
    kind: ClassVar[EventKind] = EventKind.INCOMING_CALL
    calls: list[dict[str, Any]] = field(default_factory=list)


NetworkEvent = Union[
    CredentialsChanged,
    QrCodeAvailable,
    ConnectionUpdate,
    HistorySync,
    MessagesUpsert,
    MessagesUpdate,
    MessagesDelete,
    PresenceUpdate,
    ContactsUpsert,
    ChatsUpsert,
    GroupsUpsert,
    GroupsUpdate,
    BlocklistChanged,
    IncomingCall,
]


class EventDecodeError(ValueError):
    """Raised when a known event name carries a malformed payload."""


def _as_list(value: Any) -> list:
    if not value:
        return []
    if isinstance(value, list):
        return value
    return [value]


def _require_dict(name: str, data: Any) -> dict[str, Any]:
    if not isinstance(data, dict):
        raise EventDecodeError(f"{name} payload must be an object")
    return data


def _extract_raw_cause(data: dict[str, Any]) -> Optional[Union[int, str]]:
    """Find the close cause in either the flat or the nested error shape."""
    if data.get("closeCause") is not None:
        return data["closeCause"]
    last = data.get("lastDisconnect") or {}
    error = last.get("error") or {}
    output = error.get("output") or {}
    status = output.get("statusCode")
    if status is None:
        status = error.get("statusCode")
    return status


def _decode_connection_update(data: dict[str, Any]) -> ConnectionUpdate:
    raw_state = data.get("connection")
    state = None
    if raw_state is not None:
        try:
            state = ConnectionState(raw_state)
        except ValueError as exc:
            raise EventDecodeError(f"Unknown connection state: {raw_state!r}") from exc
    raw_cause = _extract_raw_cause(data) if state is ConnectionState.CLOSE else None
    return ConnectionUpdate(
        state=state,
        qr=data.get("qr") or None,
        close_cause=parse_cause(raw_cause),
        raw_cause=raw_cause,
    )


def decode_event(name: str, data: Any) -> Optional[NetworkEvent]:
    """Decode a named network event into its typed form.

    Args:
        name: Event name as emitted by the bridge (``connection.update``,
            ``messages.upsert``, ...).
        data: JSON payload attached to the event.

    Returns:
        The typed event, or None when the name is not one the gateway
        reconciles.

    Raises:
        EventDecodeError: If the payload is structurally invalid.
    """
    if data is None:
        data = {}
    if name == "creds.update":
        return CredentialsChanged(credentials=_require_dict(name, data))
    if name == "qr":
        payload = data.get("qr") if isinstance(data, dict) else data
        if not payload:
            raise EventDecodeError("qr event without payload")
        return QrCodeAvailable(payload=str(payload))
    if name == "connection.update":
        return _decode_connection_update(_require_dict(name, data))
    if name == "messaging-history.set":
        data = _require_dict(name, data)
        return HistorySync(
            chats=_as_list(data.get("chats")),
            contacts=_as_list(data.get("contacts")),
            messages=_as_list(data.get("messages")),
            is_latest=bool(data.get("isLatest", False)),
        )
    if name == "messages.upsert":
        data = _require_dict(name, data)
        return MessagesUpsert(
            messages=_as_list(data.get("messages")),
            upsert_type=data.get("type", "notify"),
        )
    if name == "messages.update":
        return MessagesUpdate(updates=_as_list(data))
    if name == "messages.delete":
        keys = data.get("keys") if isinstance(data, dict) else data
        return MessagesDelete(keys=_as_list(keys))
    if name == "presence.update":
        data = _require_dict(name, data)
        return PresenceUpdate(chat_id=data.get("id", ""), presences=data.get("presences") or {})
    if name in ("contacts.upsert", "contacts.update"):
        return ContactsUpsert(contacts=_as_list(data))
    if name in ("chats.upsert", "chats.update"):
        return ChatsUpsert(chats=_as_list(data))
    if name == "groups.upsert":
        return GroupsUpsert(groups=_as_list(data))
    if name == "groups.update":
        return GroupsUpdate(updates=_as_list(data))
    if name in ("blocklist.set", "blocklist.update"):
        data = _require_dict(name, data)
    if name == "blocklist.set":
        return BlocklistChanged(blocklist=_as_list(data.get("blocklist")), change_type="set")
    if name == "blocklist.update":
        return BlocklistChanged(blocklist=_as_list(data.get("blocklist")), change_type=data.get("type", "add"))
    if name == "call":
        return IncomingCall(calls=_as_list(data))
    logger.debug("Ignoring unhandled network event %s", name)
    return None

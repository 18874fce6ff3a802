"""Chat network boundary: typed events, disconnect causes and adapters."""
from chatgate.network.base import (
    BusinessProfile, ChatNetworkClient, ConnectionHandle, EventListener, IdentityCheck,
    OpenOptions, PictureQuality, PresenceState,
)
from chatgate.network.bridge import BridgeConnectionHandle, BridgeNetworkClient
from chatgate.network.disconnect import PERMANENT_CAUSES, DisconnectCause, is_permanent, parse_cause
from chatgate.network.events import (
    BlocklistChanged, ChatsUpsert, ConnectionState, ConnectionUpdate, ContactsUpsert, CredentialsChanged,
    EventDecodeError, EventKind, GroupsUpdate, GroupsUpsert, HistorySync, IncomingCall, MessagesDelete,
    MessagesUpdate, MessagesUpsert, NetworkEvent, PresenceUpdate, QrCodeAvailable, decode_event,
)
from chatgate.network.exceptions import ChatNetworkError, ConnectionClosedError
__all__ = ["BusinessProfile", "ChatNetworkClient", "ConnectionHandle", "EventListener", "IdentityCheck",
           "OpenOptions", "PictureQuality", "PresenceState", "BridgeConnectionHandle", "BridgeNetworkClient",
           "PERMANENT_CAUSES", "DisconnectCause", "is_permanent", "parse_cause",
           "BlocklistChanged", "ChatsUpsert", "ConnectionState", "ConnectionUpdate", "ContactsUpsert",
           "CredentialsChanged", "EventDecodeError", "EventKind", "GroupsUpdate", "GroupsUpsert", "HistorySync",
           "IncomingCall", "MessagesDelete", "MessagesUpdate", "MessagesUpsert", "NetworkEvent", "PresenceUpdate",
           "QrCodeAvailable", "decode_event", "ChatNetworkError", "ConnectionClosedError"]

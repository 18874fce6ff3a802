"""Folds network events into session state.

One ``EventReconciler`` serves every session. ``attach`` registers it as
the listener of a freshly opened connection handle; from then on each
event is routed to the handler for its ``EventKind``. Events from a
handle that is no longer the session's current one are dropped, so a
replaced connection can never overwrite the state of its successor.
Handlers are isolated from each other: a failure is logged and the next
event is processed normally.
"""
import functools
import logging
from collections import deque
from typing import Any, Awaitable, Callable, Optional, Protocol

from chatgate.messaging.parse import ParsedMessage, format_for_log, parse_message
from chatgate.network.base import ConnectionHandle, PictureQuality
from chatgate.network.events import (
    BlocklistChanged,
    ChatsUpsert,
    ConnectionState,
    ConnectionUpdate,
    ContactsUpsert,
    CredentialsChanged,
    EventKind,
    GroupsUpdate,
    GroupsUpsert,
    HistorySync,
    IncomingCall,
    MessagesDelete,
    MessagesUpdate,
    MessagesUpsert,
    NetworkEvent,
    PresenceUpdate,
    QrCodeAvailable,
)
from chatgate.sessions.credentials import CredentialBundle, CredentialStoreError
from chatgate.sessions.models import SessionState, SessionStatus
from chatgate.sessions.pairing import PairingController
from chatgate.sessions.reconnect import ReconnectionPolicy
from chatgate.sessions.registry import SessionRegistry

logger = logging.getLogger(__name__)

Handler = Callable[[SessionState, ConnectionHandle, CredentialBundle, Any], Awaitable[None]]


class EventSink(Protocol):
    """Destination for inbound messages. ``forget`` drops a removed session's log."""

    async def append(self, owner_id: str, session_id: str, message: ParsedMessage) -> None: ...

    async def forget(self, owner_id: str, session_id: str) -> int: ...


def number_from_identity(identity: Optional[str]) -> str:
    """Strip the device suffix and domain: ``5511999:3@s.whatsapp.net`` -> ``5511999``."""
    if not identity:
        return ""
    return identity.split(":", 1)[0].split("@", 1)[0]


def _message_id(record: dict[str, Any]) -> Optional[str]:
    key = record.get("key")
    if isinstance(key, dict):
        return key.get("id")
    return None


def _own_identity(bundle: CredentialBundle) -> Optional[str]:
    me = bundle.credentials.get("me")
    return me.get("id") if isinstance(me, dict) else None


def _message_ref(record: dict[str, Any]) -> Optional[tuple[str, str]]:
    key = record.get("key")
    if isinstance(key, dict) and key.get("id"):
        return key.get("remoteJid") or "", key["id"]
    return None


def _remember_message(messages: deque, record: dict[str, Any]) -> bool:
    """Buffer a message record, replacing an earlier copy of the same message.

    Messages are identified by chat and id. Returns False if the record
    replaced one already buffered.
    """
    ref = _message_ref(record)
    if ref is not None:
        for i, existing in enumerate(messages):
            if _message_ref(existing) == ref:
                messages[i] = record
                return False
    messages.append(record)
    return True


class EventReconciler:
    def __init__(
        self,
        registry: SessionRegistry,
        pairing: PairingController,
        policy: ReconnectionPolicy,
        event_sink: Optional[EventSink] = None,
    ) -> None:
        self._registry = registry
        self._pairing = pairing
        self._policy = policy
        self._sink = event_sink
        self._handlers: dict[EventKind, Handler] = {
            EventKind.CREDENTIALS_CHANGED: self._on_credentials,
            EventKind.QR_CODE: self._on_qr,
            EventKind.CONNECTION_UPDATE: self._on_connection_update,
            EventKind.HISTORY_SYNC: self._on_history_sync,
            EventKind.MESSAGES_UPSERT: self._on_messages_upsert,
            EventKind.MESSAGES_UPDATE: self._on_messages_update,
            EventKind.MESSAGES_DELETE: self._on_messages_delete,
            EventKind.PRESENCE_UPDATE: self._on_presence,
            EventKind.CONTACTS_UPSERT: self._on_contacts_upsert,
            EventKind.CHATS_UPSERT: self._on_chats_upsert,
            EventKind.GROUPS_UPSERT: self._on_groups_upsert,
            EventKind.GROUPS_UPDATE: self._on_groups_update,
            EventKind.BLOCKLIST_CHANGED: self._on_blocklist,
            EventKind.INCOMING_CALL: self._on_call,
        }
        missing = set(EventKind) - set(self._handlers)
        if missing:
            raise RuntimeError(f"No handler for event kinds: {sorted(k.value for k in missing)}")

    def attach(self, state: SessionState, handle: ConnectionHandle, bundle: CredentialBundle) -> bool:
        """Start delivering ``handle``'s events into ``state``.

        Returns False, leaving the session as it is, if the handle
        refuses the listener.
        """
        try:
            handle.listen(functools.partial(self.dispatch, state.session_id, handle, bundle))
        except Exception:
            logger.exception("Failed to attach event listener to session %s", state.session_id)
            return False
        return True

    async def dispatch(
        self, session_id: str, handle: ConnectionHandle, bundle: CredentialBundle, event: NetworkEvent,
    ) -> None:
        state = self._registry.get(session_id)
        if state is None or state.connection_handle is not handle:
            logger.debug("Dropping %s event from stale handle of %s", event.kind.value, session_id)
            return
        state.touch()
        handler = self._handlers[event.kind]
        try:
            await handler(state, handle, bundle, event)
        except Exception:
            logger.exception("Failed to handle %s event for session %s", event.kind.value, session_id)

    def _is_current(self, state: SessionState, handle: ConnectionHandle) -> bool:
        return self._registry.get(state.session_id) is state and state.connection_handle is handle

    async def _on_credentials(
        self, state: SessionState, handle: ConnectionHandle, bundle: CredentialBundle, event: CredentialsChanged,
    ) -> None:
        try:
            bundle.save(event.credentials)
        except CredentialStoreError as exc:
            logger.warning("Could not persist credentials for session %s: %s", state.session_id, exc)

    async def _on_qr(
        self, state: SessionState, handle: ConnectionHandle, bundle: CredentialBundle, event: QrCodeAvailable,
    ) -> None:
        self._pairing.on_qr(state, event.payload)

    async def _on_connection_update(
        self, state: SessionState, handle: ConnectionHandle, bundle: CredentialBundle, event: ConnectionUpdate,
    ) -> None:
        if event.qr:
            self._pairing.on_qr(state, event.qr)
        if event.state is ConnectionState.CONNECTING or event.qr:
            await self._pairing.maybe_request_code(state, handle, event.qr)
        if event.state is ConnectionState.OPEN:
            await self._on_open(state, handle, bundle)
        elif event.state is ConnectionState.CLOSE:
            self._on_close(state, event)

    async def _on_open(self, state: SessionState, handle: ConnectionHandle, bundle: CredentialBundle) -> None:
        identity = handle.self_id or _own_identity(bundle)
        picture = ""
        if identity:
            try:
                picture = await handle.fetch_profile_picture_url(identity, PictureQuality.IMAGE) or ""
            except Exception as exc:
                logger.debug("No profile picture for session %s: %s", state.session_id, exc)
        if not self._is_current(state, handle):
            return
        state.clear_pairing()
        state.status = SessionStatus.CONNECTED
        state.remote_number = number_from_identity(identity)
        state.profile_picture_url = picture
        state.reconnect_attempts = 0
        state.reconnect_timer.cancel()
        logger.info("Session %s connected as %s", state.session_id, state.remote_number or "unknown")

    def _on_close(self, state: SessionState, event: ConnectionUpdate) -> None:
        state.clear_pairing()
        state.status = SessionStatus.DISCONNECTED
        logger.info(
            "Session %s disconnected (cause=%s)",
            state.session_id,
            event.close_cause.name if event.close_cause is not None else event.raw_cause,
        )
        self._policy.on_disconnect(state, event.close_cause)

    async def _on_history_sync(
        self, state: SessionState, handle: ConnectionHandle, bundle: CredentialBundle, event: HistorySync,
    ) -> None:
        self._merge_records(state.chats, event.chats)
        self._merge_records(state.contacts, event.contacts)
        for record in event.messages:
            if isinstance(record, dict):
                _remember_message(state.recent_messages, record)
        logger.info(
            "History sync for session %s: %d chats, %d contacts, %d messages",
            state.session_id, len(event.chats), len(event.contacts), len(event.messages),
        )

    async def _on_messages_upsert(
        self, state: SessionState, handle: ConnectionHandle, bundle: CredentialBundle, event: MessagesUpsert,
    ) -> None:
        for record in event.messages:
            if not isinstance(record, dict):
                continue
            _remember_message(state.recent_messages, record)
            parsed = parse_message(record)
            if parsed is None:
                continue
            if not parsed.is_from_me:
                logger.info("Session %s received %s", state.session_id, format_for_log(parsed))
            if self._sink is not None:
                try:
                    await self._sink.append(state.owner_id, state.session_id, parsed)
                except Exception as exc:
                    logger.warning("Event sink rejected message %s: %s", parsed.message_id, exc)

    async def _on_messages_update(
        self, state: SessionState, handle: ConnectionHandle, bundle: CredentialBundle, event: MessagesUpdate,
    ) -> None:
        changes = {}
        for item in event.updates:
            msg_id = _message_id(item)
            if msg_id and isinstance(item.get("update"), dict):
                changes[msg_id] = item["update"]
        if not changes:
            return
        for record in state.recent_messages:
            update = changes.get(_message_id(record))
            if update:
                record.update(update)

    async def _on_messages_delete(
        self, state: SessionState, handle: ConnectionHandle, bundle: CredentialBundle, event: MessagesDelete,
    ) -> None:
        doomed = {k.get("id") for k in event.keys if isinstance(k, dict)}
        if not doomed:
            return
        kept = [r for r in state.recent_messages if _message_id(r) not in doomed]
        state.recent_messages.clear()
        state.recent_messages.extend(kept)

    async def _on_presence(
        self, state: SessionState, handle: ConnectionHandle, bundle: CredentialBundle, event: PresenceUpdate,
    ) -> None:
        logger.debug("Presence update on %s for %s", state.session_id, event.chat_id)

    async def _on_contacts_upsert(
        self, state: SessionState, handle: ConnectionHandle, bundle: CredentialBundle, event: ContactsUpsert,
    ) -> None:
        self._merge_records(state.contacts, event.contacts)

    async def _on_chats_upsert(
        self, state: SessionState, handle: ConnectionHandle, bundle: CredentialBundle, event: ChatsUpsert,
    ) -> None:
        self._merge_records(state.chats, event.chats)

    async def _on_groups_upsert(
        self, state: SessionState, handle: ConnectionHandle, bundle: CredentialBundle, event: GroupsUpsert,
    ) -> None:
        self._merge_records(state.chats, event.groups)

    async def _on_groups_update(
        self, state: SessionState, handle: ConnectionHandle, bundle: CredentialBundle, event: GroupsUpdate,
    ) -> None:
        self._merge_records(state.chats, event.updates)

    async def _on_blocklist(
        self, state: SessionState, handle: ConnectionHandle, bundle: CredentialBundle, event: BlocklistChanged,
    ) -> None:
        logger.debug("Blocklist %s on %s: %d entries", event.change_type, state.session_id, len(event.blocklist))

    async def _on_call(
        self, state: SessionState, handle: ConnectionHandle, bundle: CredentialBundle, event: IncomingCall,
    ) -> None:
        for call in event.calls:
            logger.info("Incoming call on session %s from %s", state.session_id, call.get("from", "unknown") if isinstance(call, dict) else "unknown")

    @staticmethod
    def _merge_records(target, records: list[dict[str, Any]]) -> None:
        for record in records:
            if isinstance(record, dict) and record.get("id"):
                target.upsert(record["id"], record)

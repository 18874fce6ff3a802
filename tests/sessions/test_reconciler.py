"""Tests for EventReconciler."""
import json

import pytest

from chatgate.network.base import OpenOptions, PictureQuality
from chatgate.network.disconnect import DisconnectCause
from chatgate.network.events import (
    BlocklistChanged,
    ChatsUpsert,
    ConnectionState,
    ConnectionUpdate,
    ContactsUpsert,
    CredentialsChanged,
    GroupsUpdate,
    HistorySync,
    IncomingCall,
    MessagesDelete,
    MessagesUpdate,
    MessagesUpsert,
    PresenceUpdate,
    QrCodeAvailable,
)
from chatgate.sessions.credentials import CREDENTIALS_FILE
from chatgate.sessions.models import BoundedMap, PairingMethod, SessionState, SessionStatus
from chatgate.sessions.pairing import PairingController
from chatgate.sessions.reconciler import EventReconciler, number_from_identity
from chatgate.sessions.reconnect import BackoffSettings, ReconnectionPolicy
from chatgate.sessions.registry import SessionRegistry
from tests.conftest import FakeHandle, fake_qr


class NullRequester:
    async def reconnect(self, session_id: str) -> None:
        return None


class ListSink:
    def __init__(self, fail: bool = False) -> None:
        self.messages = []
        self.fail = fail

    async def append(self, owner_id, session_id, message) -> None:
        if self.fail:
            raise RuntimeError("disk full")
        self.messages.append((owner_id, session_id, message))


def _text_record(msg_id: str, text: str, ts: int = 1700000000, from_me: bool = False) -> dict:
    return {
        "key": {"id": msg_id, "remoteJid": "5511987654321@s.whatsapp.net", "fromMe": from_me},
        "message": {"conversation": text},
        "messageTimestamp": ts,
    }


@pytest.fixture
def wired(store):
    """A registered session whose current handle delivers into a reconciler."""
    registry = SessionRegistry()
    sink = ListSink()
    policy = ReconnectionPolicy(registry, NullRequester(), BackoffSettings(base_delay=5))
    reconciler = EventReconciler(registry, PairingController(fake_qr), policy, sink)
    state = SessionState(session_id="s1", owner_id="o1", pairing_method=PairingMethod.QR)
    state.contacts = BoundedMap(3)
    registry.add(state)
    store.provision(state.key)
    handle = FakeHandle({}, OpenOptions(session_id="s1"))
    state.connection_handle = handle
    assert reconciler.attach(state, handle, store.load(state.key))
    yield registry, state, handle, sink
    state.reconnect_timer.cancel()


class TestConnectionEvents:
    """Pairing and connection lifecycle events."""

    @pytest.mark.asyncio
    async def test_credentials_are_persisted(self, wired, store):
        _, state, handle, _ = wired
        await handle.emit(CredentialsChanged(credentials={"me": {"id": "5511@s.whatsapp.net"}}))
        saved = json.loads((store.path_for(state.key) / CREDENTIALS_FILE).read_text())
        assert saved["me"]["id"] == "5511@s.whatsapp.net"

    @pytest.mark.asyncio
    async def test_credential_write_failure_is_not_fatal(self, wired, store):
        _, state, handle, _ = wired
        store.delete(state.key)
        await handle.emit(CredentialsChanged(credentials={"me": {"id": "x"}}))
        await handle.emit(QrCodeAvailable(payload="ref-1"))
        assert state.status is SessionStatus.QR_PENDING

    @pytest.mark.asyncio
    async def test_qr_in_connection_update(self, wired):
        _, state, handle, _ = wired
        await handle.emit(ConnectionUpdate(qr="ref-2"))
        assert state.status is SessionStatus.QR_PENDING
        assert state.qr_payload == "qr:ref-2"

    @pytest.mark.asyncio
    async def test_open_runs_connected_entry_actions(self, wired):
        _, state, handle, _ = wired
        handle.pictures[PictureQuality.IMAGE] = "https://pic/me"
        state.reconnect_attempts = 4
        await handle.emit(QrCodeAvailable(payload="ref-1"))

        await handle.open_as("5511987654321:7@s.whatsapp.net")

        assert state.status is SessionStatus.CONNECTED
        assert state.qr_payload is None
        assert state.pairing_code is None
        assert state.remote_number == "5511987654321"
        assert state.profile_picture_url == "https://pic/me"
        assert state.reconnect_attempts == 0

    @pytest.mark.asyncio
    async def test_open_survives_picture_failure(self, wired):
        _, state, handle, _ = wired
        handle.fail.add("fetch_profile_picture_url")
        await handle.open_as("5511987654321@s.whatsapp.net")
        assert state.status is SessionStatus.CONNECTED
        assert state.profile_picture_url == ""

    @pytest.mark.asyncio
    async def test_open_falls_back_to_stored_identity(self, wired):
        _, state, handle, _ = wired
        handle.pictures[PictureQuality.IMAGE] = "https://pic/me"
        await handle.emit(CredentialsChanged(credentials={"me": {"id": "5511987654321:2@s.whatsapp.net"}}))

        await handle.emit(ConnectionUpdate(state=ConnectionState.OPEN))

        assert handle.self_id is None
        assert state.status is SessionStatus.CONNECTED
        assert state.remote_number == "5511987654321"
        assert ("fetch_profile_picture_url", "5511987654321:2@s.whatsapp.net", PictureQuality.IMAGE) in handle.calls
        assert state.profile_picture_url == "https://pic/me"

    @pytest.mark.asyncio
    async def test_close_hands_off_to_policy(self, wired):
        _, state, handle, _ = wired
        await handle.emit(QrCodeAvailable(payload="ref-1"))
        await handle.emit(ConnectionUpdate(state=ConnectionState.CLOSE, close_cause=DisconnectCause.CONNECTION_LOST))
        assert state.status is SessionStatus.DISCONNECTED
        assert state.qr_payload is None
        assert state.reconnect_timer.pending
        assert state.reconnect_timer.delay == 5

    @pytest.mark.asyncio
    async def test_code_requested_on_connecting(self, wired):
        _, state, handle, _ = wired
        state.pairing_method = PairingMethod.CODE
        state.phone_number = "5511987654321"
        await handle.emit(ConnectionUpdate(state=ConnectionState.CONNECTING))
        assert state.status is SessionStatus.CODE_PENDING
        assert state.pairing_code == "ABCD-1234"

    @pytest.mark.asyncio
    async def test_stale_handle_events_are_dropped(self, wired):
        _, state, handle, _ = wired
        state.connection_handle = FakeHandle({}, OpenOptions(session_id="s1"))
        await handle.emit(QrCodeAvailable(payload="ref-1"))
        assert state.status is SessionStatus.CONNECTING
        assert state.last_activity_at is None


class TestBufferEvents:
    """Contacts, chats and message buffers."""

    @pytest.mark.asyncio
    async def test_history_sync_merges_buffers(self, wired):
        _, state, handle, _ = wired
        await handle.emit(HistorySync(
            chats=[{"id": "a@s.whatsapp.net", "unreadCount": 1}],
            contacts=[{"id": "a@s.whatsapp.net", "notify": "Ana"}, {"notify": "no id"}],
            messages=[_text_record("M1", "hi")],
        ))
        assert list(state.chats) == ["a@s.whatsapp.net"]
        assert list(state.contacts) == ["a@s.whatsapp.net"]
        assert len(state.recent_messages) == 1
        assert state.last_activity_at is not None

    @pytest.mark.asyncio
    async def test_history_and_upsert_overlap_is_buffered_once(self, wired):
        _, state, handle, _ = wired
        await handle.emit(HistorySync(messages=[_text_record("M1", "hi"), _text_record("M2", "there")]))
        await handle.emit(MessagesUpsert(messages=[_text_record("M1", "hi edited"), _text_record("M3", "new")]))

        assert [r["key"]["id"] for r in state.recent_messages] == ["M1", "M2", "M3"]
        assert state.recent_messages[0]["message"]["conversation"] == "hi edited"

    @pytest.mark.asyncio
    async def test_same_id_in_different_chats_is_kept(self, wired):
        _, state, handle, _ = wired
        other = _text_record("M1", "elsewhere")
        other["key"]["remoteJid"] = "5511911112222@s.whatsapp.net"
        await handle.emit(MessagesUpsert(messages=[_text_record("M1", "hi"), other]))
        await handle.emit(MessagesUpsert(messages=[_text_record("M1", "hi")]))

        assert len(state.recent_messages) == 2

    @pytest.mark.asyncio
    async def test_contacts_are_bounded_and_merged(self, wired):
        _, state, handle, _ = wired
        await handle.emit(ContactsUpsert(contacts=[{"id": f"{n}@s.whatsapp.net"} for n in range(4)]))
        assert list(state.contacts) == ["1@s.whatsapp.net", "2@s.whatsapp.net", "3@s.whatsapp.net"]
        await handle.emit(ContactsUpsert(contacts=[{"id": "2@s.whatsapp.net", "name": "Bia"}]))
        assert list(state.contacts)[-1] == "2@s.whatsapp.net"
        assert state.contacts["2@s.whatsapp.net"] == {"id": "2@s.whatsapp.net", "name": "Bia"}

    @pytest.mark.asyncio
    async def test_chats_and_groups(self, wired):
        _, state, handle, _ = wired
        await handle.emit(ChatsUpsert(chats=[{"id": "g@g.us", "subject": "Old"}]))
        await handle.emit(GroupsUpdate(updates=[{"id": "g@g.us", "subject": "New"}]))
        assert state.chats["g@g.us"]["subject"] == "New"

    @pytest.mark.asyncio
    async def test_upsert_buffers_and_sinks_messages(self, wired):
        _, state, handle, sink = wired
        await handle.emit(MessagesUpsert(messages=[_text_record("M1", "hello"), {"key": {"id": "R1"}}]))
        assert len(state.recent_messages) == 2
        assert len(sink.messages) == 1
        owner, session, parsed = sink.messages[0]
        assert (owner, session, parsed.message_id, parsed.content) == ("o1", "s1", "M1", "hello")

    @pytest.mark.asyncio
    async def test_sink_failure_is_isolated(self, wired):
        _, state, handle, sink = wired
        sink.fail = True
        await handle.emit(MessagesUpsert(messages=[_text_record("M1", "hello")]))
        assert len(state.recent_messages) == 1

    @pytest.mark.asyncio
    async def test_update_and_delete(self, wired):
        _, state, handle, _ = wired
        await handle.emit(MessagesUpsert(messages=[_text_record("M1", "a"), _text_record("M2", "b")]))
        await handle.emit(MessagesUpdate(updates=[{"key": {"id": "M1"}, "update": {"status": 4}}]))
        await handle.emit(MessagesDelete(keys=[{"id": "M2"}]))
        assert [r["key"]["id"] for r in state.recent_messages] == ["M1"]
        assert state.recent_messages[0]["status"] == 4

    @pytest.mark.asyncio
    async def test_side_channel_events_only_touch_activity(self, wired):
        _, state, handle, _ = wired
        await handle.emit(PresenceUpdate(chat_id="a@s.whatsapp.net"))
        await handle.emit(BlocklistChanged(blocklist=["x"]))
        await handle.emit(IncomingCall(calls=[{"from": "a@s.whatsapp.net"}, "junk"]))
        assert state.last_activity_at is not None
        assert state.status is SessionStatus.CONNECTING


class TestAttach:
    """Listener registration."""

    def test_refused_listener_leaves_session(self, store):
        class RefusingHandle(FakeHandle):
            def listen(self, listener):
                raise RuntimeError("already listening")

        registry = SessionRegistry()
        reconciler = EventReconciler(
            registry, PairingController(fake_qr), ReconnectionPolicy(registry, NullRequester()),
        )
        state = SessionState(session_id="s1", owner_id="o1", pairing_method=PairingMethod.QR)
        handle = RefusingHandle({}, OpenOptions(session_id="s1"))
        store.provision(state.key)
        assert reconciler.attach(state, handle, store.load(state.key)) is False
        assert state.status is SessionStatus.CONNECTING


def test_number_from_identity():
    assert number_from_identity("5511999:3@s.whatsapp.net") == "5511999"
    assert number_from_identity("5511999@s.whatsapp.net") == "5511999"
    assert number_from_identity(None) == ""

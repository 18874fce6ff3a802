"""Tests for event decoding and disconnect cause parsing."""
import pytest

from chatgate.network.disconnect import DisconnectCause, is_permanent, parse_cause
from chatgate.network.events import (
    BlocklistChanged,
    ConnectionState,
    ConnectionUpdate,
    CredentialsChanged,
    EventDecodeError,
    EventKind,
    HistorySync,
    MessagesDelete,
    MessagesUpsert,
    QrCodeAvailable,
    decode_event,
)


class TestParseCause:
    """Tests for mapping raw close causes."""

    @pytest.mark.parametrize("raw", [401, "401", "loggedOut", "logged_out", "LOGGED_OUT"])
    def test_logged_out_spellings(self, raw):
        assert parse_cause(raw) is DisconnectCause.LOGGED_OUT

    def test_restart_required(self):
        assert parse_cause(515) is DisconnectCause.RESTART_REQUIRED

    def test_unknown_values_are_none(self):
        assert parse_cause(999) is None
        assert parse_cause("somethingElse") is None
        assert parse_cause(None) is None
        assert parse_cause(True) is None

    def test_permanent_set(self):
        for cause in (
            DisconnectCause.LOGGED_OUT,
            DisconnectCause.FORBIDDEN,
            DisconnectCause.MULTIDEVICE_MISMATCH,
            DisconnectCause.PRECONDITION_FAILED,
            DisconnectCause.BAD_SESSION,
        ):
            assert is_permanent(cause)
        assert not is_permanent(DisconnectCause.CONNECTION_LOST)
        assert not is_permanent(DisconnectCause.RESTART_REQUIRED)
        assert not is_permanent(None)


class TestDecodeEvent:
    """Tests for decode_event."""

    def test_credentials_update(self):
        event = decode_event("creds.update", {"me": {"id": "5511@s.whatsapp.net"}})
        assert isinstance(event, CredentialsChanged)
        assert event.kind is EventKind.CREDENTIALS_CHANGED
        assert event.credentials["me"]["id"] == "5511@s.whatsapp.net"

    def test_qr_accepts_object_or_string(self):
        assert decode_event("qr", {"qr": "abc"}) == QrCodeAvailable(payload="abc")
        assert decode_event("qr", "xyz") == QrCodeAvailable(payload="xyz")

    def test_qr_without_payload_raises(self):
        with pytest.raises(EventDecodeError):
            decode_event("qr", {})

    def test_close_with_nested_cause(self):
        event = decode_event(
            "connection.update",
            {"connection": "close", "lastDisconnect": {"error": {"output": {"statusCode": 401}}}},
        )
        assert isinstance(event, ConnectionUpdate)
        assert event.state is ConnectionState.CLOSE
        assert event.close_cause is DisconnectCause.LOGGED_OUT
        assert event.raw_cause == 401

    def test_close_with_flat_cause(self):
        event = decode_event("connection.update", {"connection": "close", "closeCause": "restartRequired"})
        assert event.close_cause is DisconnectCause.RESTART_REQUIRED

    def test_open_ignores_cause(self):
        event = decode_event("connection.update", {"connection": "open", "closeCause": 401})
        assert event.state is ConnectionState.OPEN
        assert event.close_cause is None

    def test_qr_only_update(self):
        event = decode_event("connection.update", {"qr": "ref-1"})
        assert event.state is None
        assert event.qr == "ref-1"

    def test_unknown_connection_state_raises(self):
        with pytest.raises(EventDecodeError):
            decode_event("connection.update", {"connection": "sideways"})

    def test_history_sync(self):
        event = decode_event(
            "messaging-history.set",
            {"chats": [{"id": "a"}], "contacts": [], "messages": [{"key": {"id": "1"}}], "isLatest": True},
        )
        assert isinstance(event, HistorySync)
        assert event.chats == [{"id": "a"}]
        assert event.contacts == []
        assert event.is_latest is True

    def test_messages_upsert_defaults(self):
        event = decode_event("messages.upsert", {"messages": [{"key": {"id": "1"}}]})
        assert isinstance(event, MessagesUpsert)
        assert event.upsert_type == "notify"

    def test_messages_delete_shapes(self):
        assert decode_event("messages.delete", {"keys": [{"id": "1"}]}) == MessagesDelete(keys=[{"id": "1"}])
        assert decode_event("messages.delete", [{"id": "2"}]) == MessagesDelete(keys=[{"id": "2"}])

    def test_empty_object_is_not_a_record(self):
        assert decode_event("contacts.upsert", {}).contacts == []

    def test_blocklist_update(self):
        event = decode_event("blocklist.update", {"blocklist": ["x"], "type": "remove"})
        assert isinstance(event, BlocklistChanged)
        assert event.change_type == "remove"

    def test_unknown_event_is_ignored(self):
        assert decode_event("labels.edit", {"id": 1}) is None

    def test_payload_must_be_object(self):
        with pytest.raises(EventDecodeError):
            decode_event("messages.upsert", ["not", "an", "object"])

"""Tests for message record parsing."""
from chatgate.messaging.content import file_content, text_content
from chatgate.messaging.parse import MessageType, format_for_log, parse_message, timestamp_ms


class TestParseMessage:
    """Normalizing raw records."""

    def test_text(self):
        parsed = parse_message({
            "key": {"id": "M1", "remoteJid": "5511@s.whatsapp.net", "fromMe": True},
            "message": {"conversation": "hello"},
            "messageTimestamp": 1700000000,
        })
        assert parsed.type is MessageType.TEXT
        assert parsed.content == "hello"
        assert parsed.timestamp == 1700000000000
        assert parsed.is_from_me is True
        assert parsed.is_group is False

    def test_group_sender_is_participant(self):
        parsed = parse_message({
            "key": {"id": "M2", "remoteJid": "1203@g.us", "participant": "5511@s.whatsapp.net"},
            "message": {"imageMessage": {"caption": "look", "mimetype": "image/jpeg", "url": "https://m"}},
            "messageTimestamp": {"low": 10, "high": 0},
        })
        assert parsed.is_group
        assert parsed.group_id == "1203@g.us"
        assert parsed.sender == "5511@s.whatsapp.net"
        assert parsed.type is MessageType.IMAGE
        assert parsed.caption == "look"
        assert parsed.metadata["mimetype"] == "image/jpeg"
        assert parsed.timestamp == 10000

    def test_quoted_reply(self):
        parsed = parse_message({
            "key": {"id": "M3", "remoteJid": "5511@s.whatsapp.net"},
            "message": {"extendedTextMessage": {
                "text": "agreed",
                "contextInfo": {"stanzaId": "M1", "participant": "5522@s.whatsapp.net",
                                "quotedMessage": {"conversation": "deal?"}},
            }},
        })
        assert parsed.content == "agreed"
        assert parsed.quoted.message_id == "M1"
        assert parsed.quoted.content == "deal?"
        assert parsed.to_dict()["quoted"]["content"] == "deal?"

    def test_voice_note_and_document(self):
        voice = parse_message({"key": {"id": "a"}, "message": {"audioMessage": {"ptt": True}}})
        doc = parse_message({"key": {"id": "b"}, "message": {"documentMessage": {"fileName": "r.pdf"}}})
        assert voice.content == "Voice note"
        assert doc.content == "Document: r.pdf"

    def test_records_without_body_are_skipped(self):
        assert parse_message({"key": {"id": "x"}}) is None
        assert parse_message({"message": {"conversation": "x"}}) is None

    def test_unknown_body(self):
        parsed = parse_message({"key": {"id": "x"}, "message": {"reactionMessage": {}}})
        assert parsed.type is MessageType.UNKNOWN
        assert parsed.to_dict()["type"] == "unknown"

    def test_log_line_truncates(self):
        parsed = parse_message({"key": {"id": "x", "remoteJid": "5511@s.whatsapp.net"},
                                "message": {"conversation": "y" * 80}})
        line = format_for_log(parsed)
        assert line.startswith("[TEXT] 5511@s.whatsapp.net: ")
        assert line.endswith("...")

    def test_timestamp_ms_tolerates_garbage(self):
        assert timestamp_ms(None) == 0
        assert timestamp_ms("12") == 12000


class TestContent:
    """Outbound envelopes."""

    def test_text(self):
        assert text_content("hi") == {"text": "hi"}

    def test_mime_dispatch(self):
        assert "image" in file_content(b"x", "a.png", "image/png")
        assert "video" in file_content(b"x", "a.mp4", "video/mp4")
        assert "document" in file_content(b"x", "a.pdf", "application/pdf")

    def test_audio_is_not_a_voice_note(self):
        content = file_content(b"x", "a.ogg", "audio/ogg", caption="listen")
        assert content["audio"] == b"x"
        assert content["ptt"] is False
        assert content["caption"] == "listen"

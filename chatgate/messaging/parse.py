"""Normalize raw network message records into a flat, typed form."""
import logging
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Optional

logger = logging.getLogger(__name__)

GROUP_SUFFIX = "@g.us"
LOG_PREVIEW_LENGTH = 50


class MessageType(Enum):
    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    DOCUMENT = "document"
    STICKER = "sticker"
    LOCATION = "location"
    CONTACT = "contact"
    UNKNOWN = "unknown"


@dataclass
class ParsedMessage:
    """A chat message reduced to the fields the gateway exposes.

    ``timestamp`` is in milliseconds since the epoch. For group messages
    ``sender`` is the participant and ``group_id`` the group identity.
    """

    message_id: str
    sender: str
    timestamp: int
    type: MessageType = MessageType.UNKNOWN
    content: str = ""
    caption: Optional[str] = None
    media_url: Optional[str] = None
    is_from_me: bool = False
    is_group: bool = False
    group_id: Optional[str] = None
    participant: Optional[str] = None
    quoted: Optional["ParsedMessage"] = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["type"] = self.type.value
        if self.quoted is not None:
            data["quoted"] = self.quoted.to_dict()
        return data


def timestamp_ms(raw: Any) -> int:
    if isinstance(raw, dict):
        # Long values serialized as {"low": ..., "high": ...}
        raw = raw.get("low", 0)
    try:
        return int(raw) * 1000
    except (TypeError, ValueError):
        return 0


def _describe(body: dict[str, Any], parsed: ParsedMessage) -> None:
    """Fill type, content, caption and metadata from a message body."""
    if body.get("conversation"):
        parsed.type = MessageType.TEXT
        parsed.content = body["conversation"]
    elif "extendedTextMessage" in body:
        ext = body["extendedTextMessage"] or {}
        parsed.type = MessageType.TEXT
        parsed.content = ext.get("text") or ""
        context = ext.get("contextInfo") or {}
        if context.get("quotedMessage"):
            parsed.quoted = _parse_quoted(context)
    elif "imageMessage" in body:
        media = body["imageMessage"] or {}
        parsed.type = MessageType.IMAGE
        parsed.content = "Image"
        parsed.caption = media.get("caption") or ""
        parsed.media_url = media.get("url")
        parsed.metadata = _pick(media, "mimetype", "fileLength", "width", "height")
    elif "videoMessage" in body:
        media = body["videoMessage"] or {}
        parsed.type = MessageType.VIDEO
        parsed.content = "Video"
        parsed.caption = media.get("caption") or ""
        parsed.media_url = media.get("url")
        parsed.metadata = _pick(media, "mimetype", "fileLength", "seconds")
    elif "audioMessage" in body:
        media = body["audioMessage"] or {}
        parsed.type = MessageType.AUDIO
        parsed.content = "Voice note" if media.get("ptt") else "Audio"
        parsed.media_url = media.get("url")
        parsed.metadata = _pick(media, "mimetype", "fileLength", "seconds", "ptt")
    elif "documentMessage" in body:
        media = body["documentMessage"] or {}
        parsed.type = MessageType.DOCUMENT
        parsed.content = f"Document: {media.get('fileName') or 'unnamed'}"
        parsed.media_url = media.get("url")
        parsed.metadata = _pick(media, "mimetype", "fileLength", "fileName")
    elif "stickerMessage" in body:
        media = body["stickerMessage"] or {}
        parsed.type = MessageType.STICKER
        parsed.content = "Sticker"
        parsed.media_url = media.get("url")
        parsed.metadata = _pick(media, "mimetype", "fileLength", "width", "height")
    elif "locationMessage" in body:
        loc = body["locationMessage"] or {}
        parsed.type = MessageType.LOCATION
        parsed.content = "Location shared"
        parsed.metadata = {
            "latitude": loc.get("degreesLatitude"),
            "longitude": loc.get("degreesLongitude"),
            "name": loc.get("name"),
            "address": loc.get("address"),
        }
    elif "contactMessage" in body:
        card = body["contactMessage"] or {}
        parsed.type = MessageType.CONTACT
        parsed.content = f"Contact: {card.get('displayName') or 'unnamed'}"
        parsed.metadata = _pick(card, "displayName", "vcard")


def _pick(source: dict[str, Any], *keys: str) -> dict[str, Any]:
    return {k: source.get(k) for k in keys}


def _parse_quoted(context: dict[str, Any]) -> ParsedMessage:
    quoted = ParsedMessage(
        message_id=context.get("stanzaId") or "",
        sender=context.get("participant") or "",
        timestamp=0,
    )
    _describe(context.get("quotedMessage") or {}, quoted)
    quoted.metadata = {}
    return quoted


def parse_message(record: dict[str, Any]) -> Optional[ParsedMessage]:
    """Parse one raw message record.

    Returns None for records without a key or body (receipts, protocol
    messages, stubs), which carry nothing a caller can display.
    """
    key = record.get("key")
    body = record.get("message")
    if not isinstance(key, dict) or not isinstance(body, dict):
        return None
    remote = key.get("remoteJid") or ""
    parsed = ParsedMessage(
        message_id=key.get("id") or "",
        sender=remote,
        timestamp=timestamp_ms(record.get("messageTimestamp")),
        is_from_me=bool(key.get("fromMe", False)),
        is_group=remote.endswith(GROUP_SUFFIX),
        participant=key.get("participant"),
    )
    if parsed.is_group:
        parsed.group_id = remote
        parsed.sender = key.get("participant") or ""
    _describe(body, parsed)
    return parsed


def format_for_log(message: ParsedMessage) -> str:
    """One-line summary of a message with its content truncated."""
    origin = f"{message.group_id} ({message.participant})" if message.is_group else message.sender
    content = message.content
    if len(content) > LOG_PREVIEW_LENGTH:
        content = content[:LOG_PREVIEW_LENGTH] + "..."
    return f"[{message.type.value.upper()}] {origin}: {content}"

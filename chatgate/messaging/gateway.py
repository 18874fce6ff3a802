"""Outbound operations against connected sessions.

Every operation resolves the session for its owner and refuses to run
unless the session is connected. Sends suspend on network round-trips,
during which the session can disconnect, so the connection is checked
again right before the message leaves. Network failures surface as
``UpstreamFailureError`` and are never retried here.
"""
import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from chatgate.errors import (
    GatewayError,
    InvalidArgumentError,
    NotConnectedError,
    RecipientNotFoundError,
    UpstreamFailureError,
)
from chatgate.messaging.content import file_content, text_content
from chatgate.messaging.identity import candidate_identities, is_group, resolve_identity
from chatgate.messaging.parse import parse_message, timestamp_ms
from chatgate.network.base import ConnectionHandle, PictureQuality, PresenceState
from chatgate.sessions.models import SessionState, SessionStatus
from chatgate.sessions.registry import SessionRegistry

logger = logging.getLogger(__name__)

MAX_MESSAGE_LIMIT = 1000


@dataclass(frozen=True)
class HumanizeSettings:
    """Presence simulation timings, in seconds."""

    enabled: bool = True
    presence_pause: float = 0.5
    typing_delay_per_char: float = 0.05
    typing_delay_max: float = 3.0

    def typing_delay(self, text: str) -> float:
        return min(len(text) * self.typing_delay_per_char, self.typing_delay_max)


@dataclass(frozen=True)
class SendResult:
    recipient: str
    message_id: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {"waId": self.recipient, "messageId": self.message_id}


@dataclass
class ValidatedNumber:
    """Outcome of ``validate_number``. Only ``exists`` is guaranteed."""

    exists: bool
    jid: Optional[str] = None
    status: Optional[str] = None
    picture: Optional[str] = None
    business: bool = False
    name: Optional[str] = None
    business_hours: Optional[str] = None
    website: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    category: Optional[str] = None
    verified_name: Optional[str] = None
    notify: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        if not self.exists:
            return {"exists": False}
        data = {
            "exists": True,
            "jid": self.jid,
            "status": self.status,
            "picture": self.picture,
            "business": self.business,
            "name": self.name,
            "businessHours": self.business_hours,
            "website": self.website,
            "email": self.email,
            "address": self.address,
            "category": self.category,
            "verifiedName": self.verified_name,
            "notify": self.notify,
        }
        return {k: v for k, v in data.items() if v is not None}


class OutboundGateway:
    def __init__(
        self,
        registry: SessionRegistry,
        humanize: Optional[HumanizeSettings] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._registry = registry
        self._humanize = humanize or HumanizeSettings()
        self._sleep = sleep

    def _require_connected(self, owner_id: str, session_id: str) -> tuple[SessionState, ConnectionHandle]:
        state = self._registry.lookup(owner_id, session_id)
        handle = state.connection_handle
        if state.status is not SessionStatus.CONNECTED or handle is None:
            raise NotConnectedError(session_id, state.status.value)
        return state, handle

    def _revalidate(self, state: SessionState, handle: ConnectionHandle) -> None:
        if (
            self._registry.get(state.session_id) is not state
            or state.status is not SessionStatus.CONNECTED
            or state.connection_handle is not handle
        ):
            raise NotConnectedError(state.session_id, state.status.value)

    async def _resolve(self, handle: ConnectionHandle, to: str) -> str:
        try:
            resolution = await resolve_identity(handle, to)
        except GatewayError:
            raise
        except Exception as exc:
            raise UpstreamFailureError(f"Identity lookup failed: {exc}") from exc
        if resolution is None:
            raise RecipientNotFoundError(to)
        return resolution.canonical_id

    async def _simulate_typing(self, handle: ConnectionHandle, jid: str, text: str) -> None:
        h = self._humanize
        if not h.enabled:
            return
        await handle.subscribe_presence(jid)
        await self._sleep(h.presence_pause)
        await handle.send_presence(jid, PresenceState.COMPOSING)
        await self._sleep(h.typing_delay(text))
        await handle.send_presence(jid, PresenceState.PAUSED)
        await self._sleep(h.presence_pause)

    async def send_message(self, owner_id: str, session_id: str, to: str, text: str) -> SendResult:
        """Send a text message after a short typing simulation.

        Raises:
            InvalidArgumentError: Missing recipient or empty text.
            NotFoundError: Session absent or owned by someone else.
            NotConnectedError: Session not connected, before or during the send.
            RecipientNotFoundError: No variant of ``to`` exists on the network.
            UpstreamFailureError: The network rejected an operation.
        """
        if not to or not text:
            raise InvalidArgumentError("Fields 'to' and 'message' are required")
        state, handle = self._require_connected(owner_id, session_id)
        jid = await self._resolve(handle, to)
        self._revalidate(state, handle)
        try:
            await self._simulate_typing(handle, jid, text)
            self._revalidate(state, handle)
            response = await handle.send_message(jid, text_content(text))
        except GatewayError:
            raise
        except Exception as exc:
            raise UpstreamFailureError(f"Failed to send message: {exc}") from exc
        logger.info("Session %s sent message to %s", session_id, jid)
        return SendResult(jid, _sent_message_id(response))

    async def send_file(
        self,
        owner_id: str,
        session_id: str,
        to: str,
        data: bytes,
        filename: str,
        mime_type: str,
        caption: Optional[str] = None,
    ) -> SendResult:
        if not to:
            raise InvalidArgumentError("Field 'to' is required")
        if not data:
            raise InvalidArgumentError("File is empty")
        state, handle = self._require_connected(owner_id, session_id)
        jid = await self._resolve(handle, to)
        content = file_content(data, filename or "file", mime_type or "application/octet-stream", caption)
        self._revalidate(state, handle)
        try:
            response = await handle.send_message(jid, content)
        except GatewayError:
            raise
        except Exception as exc:
            raise UpstreamFailureError(f"Failed to send file: {exc}") from exc
        logger.info("Session %s sent %s (%d bytes) to %s", session_id, mime_type, len(data), jid)
        return SendResult(jid, _sent_message_id(response))

    async def validate_number(self, owner_id: str, session_id: str, number: str) -> ValidatedNumber:
        """Check whether ``number`` exists and describe it.

        Variants are probed in order and the first confirmed one wins.
        Enrichment lookups are independent: each one that fails is
        skipped without affecting the others.
        """
        state, handle = self._require_connected(owner_id, session_id)
        candidates = candidate_identities(number)
        check = None
        jid = None
        try:
            for candidate in candidates:
                if is_group(candidate):
                    jid = candidate
                    break
                result = await handle.check_identity_exists(candidate)
                if result.exists:
                    check = result
                    jid = result.canonical_id or candidate
                    break
        except Exception as exc:
            raise UpstreamFailureError(f"Identity lookup failed: {exc}") from exc
        if jid is None:
            return ValidatedNumber(exists=False)

        validated = ValidatedNumber(exists=True, jid=jid)
        await self._enrich_status(handle, validated)
        await self._enrich_picture(handle, validated)
        await self._enrich_business(handle, validated)

        contact = state.contacts.get(jid)
        if contact:
            validated.verified_name = contact.get("verifiedName") or validated.verified_name
            if not validated.name:
                validated.name = contact.get("name") or contact.get("notify")
            validated.notify = contact.get("notify")

        try:
            await handle.subscribe_presence(jid)
        except Exception as exc:
            logger.debug("Presence subscribe for %s failed: %s", jid, exc)

        if check is not None:
            validated.business = validated.business or check.is_business
            if check.verified_name:
                validated.verified_name = check.verified_name
        return validated

    async def _enrich_status(self, handle: ConnectionHandle, validated: ValidatedNumber) -> None:
        try:
            validated.status = await handle.fetch_status_text(validated.jid)
        except Exception as exc:
            logger.debug("No status text for %s: %s", validated.jid, exc)

    async def _enrich_picture(self, handle: ConnectionHandle, validated: ValidatedNumber) -> None:
        for quality in (PictureQuality.IMAGE, PictureQuality.PREVIEW):
            try:
                url = await handle.fetch_profile_picture_url(validated.jid, quality)
            except Exception as exc:
                logger.debug("No %s picture for %s: %s", quality.value, validated.jid, exc)
                continue
            if url:
                validated.picture = url
                return

    async def _enrich_business(self, handle: ConnectionHandle, validated: ValidatedNumber) -> None:
        try:
            profile = await handle.fetch_business_profile(validated.jid)
        except Exception as exc:
            logger.debug("No business profile for %s: %s", validated.jid, exc)
            return
        if profile is None:
            return
        validated.business = True
        validated.name = profile.description or profile.email
        if profile.business_hours:
            validated.business_hours = json.dumps(profile.business_hours)
        if profile.website:
            validated.website = profile.website[0]
        validated.email = profile.email
        validated.address = profile.address
        validated.category = profile.category

    def get_contacts(self, owner_id: str, session_id: str) -> list[dict[str, Any]]:
        state, _ = self._require_connected(owner_id, session_id)
        return [
            {
                "id": c.get("id"),
                "name": c.get("name") or c.get("notify"),
                "notify": c.get("notify"),
                "verifiedName": c.get("verifiedName"),
                "imgUrl": c.get("imgUrl"),
                "status": c.get("status"),
            }
            for c in state.contacts.values()
        ]

    def get_chats(self, owner_id: str, session_id: str) -> list[dict[str, Any]]:
        state, _ = self._require_connected(owner_id, session_id)
        return [
            {
                "id": c.get("id"),
                "name": c.get("name") or c.get("subject"),
                "conversationTimestamp": c.get("conversationTimestamp"),
                "unreadCount": c.get("unreadCount") or 0,
                "archived": bool(c.get("archived", False)),
                "pinned": bool(c.get("pinned", False)),
                "muteEndTime": c.get("muteEndTime"),
                "lastMessageTime": c.get("lastMessageRecvTimestamp") or c.get("conversationTimestamp"),
            }
            for c in state.chats.values()
        ]

    def get_messages(self, owner_id: str, session_id: str, limit: int = 50) -> list[dict[str, Any]]:
        """Most recent buffered messages, newest first."""
        if limit < 1 or limit > MAX_MESSAGE_LIMIT:
            raise InvalidArgumentError(f"limit must be between 1 and {MAX_MESSAGE_LIMIT}", {"limit": limit})
        state, _ = self._require_connected(owner_id, session_id)
        records = sorted(
            state.recent_messages,
            key=lambda r: timestamp_ms(r.get("messageTimestamp")),
            reverse=True,
        )
        messages = []
        for record in records:
            parsed = parse_message(record)
            if parsed is None:
                continue
            item = parsed.to_dict()
            item["status"] = record.get("status")
            messages.append(item)
            if len(messages) >= limit:
                break
        return messages

    async def get_groups(self, owner_id: str, session_id: str) -> list[dict[str, Any]]:
        _, handle = self._require_connected(owner_id, session_id)
        try:
            groups = await handle.fetch_all_groups()
        except Exception as exc:
            raise UpstreamFailureError(f"Failed to fetch groups: {exc}") from exc
        result = []
        for g in groups:
            participants = g.get("participants") or []
            result.append({
                "id": g.get("id"),
                "subject": g.get("subject"),
                "owner": g.get("owner"),
                "creation": g.get("creation"),
                "desc": g.get("desc"),
                "descOwner": g.get("descOwner"),
                "descId": g.get("descId"),
                "participants": participants,
                "size": g.get("size") or len(participants),
            })
        return result


def _sent_message_id(response: Any) -> Optional[str]:
    if not isinstance(response, dict):
        return None
    key = response.get("key")
    if isinstance(key, dict) and key.get("id"):
        return key["id"]
    return response.get("messageId")

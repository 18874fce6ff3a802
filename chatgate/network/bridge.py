"""HTTP adapter for a chat network bridge process.

The bridge is a sidecar that owns the actual protocol socket and exposes
it over HTTP: one resource per open socket, a newline-delimited JSON
event stream, and one endpoint per request/response operation. This
module adapts that surface to ``ChatNetworkClient``/``ConnectionHandle``.
"""
import asyncio
import base64
import json
import logging
import random
from typing import Any, Optional

import httpx

from chatgate.network.base import (
    BusinessProfile,
    EventListener,
    IdentityCheck,
    OpenOptions,
    PictureQuality,
    PresenceState,
)
from chatgate.network.disconnect import DisconnectCause
from chatgate.network.events import (
    ConnectionState,
    ConnectionUpdate,
    EventDecodeError,
    decode_event,
)
from chatgate.network.exceptions import ChatNetworkError, ConnectionClosedError

logger = logging.getLogger(__name__)

_RETRYABLE_STATUS = (408, 429, 500, 502, 503, 504)


def _encode_binary(value: Any) -> Any:
    """Replace raw bytes anywhere in a payload with a base64 envelope."""
    if isinstance(value, (bytes, bytearray)):
        return {"base64": base64.b64encode(bytes(value)).decode("ascii")}
    if isinstance(value, dict):
        return {k: _encode_binary(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_encode_binary(v) for v in value]
    return value


class BridgeNetworkClient:
    """Opens connections through the bridge's HTTP API."""

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 30.0,
        max_retries: int = 3,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._timeout = timeout
        self._max_retries = max_retries
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    async def __aenter__(self) -> "BridgeNetworkClient":
        return self

    async def __aexit__(self, exc_type: type | None, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def open(self, credentials: dict[str, Any], options: OpenOptions) -> "BridgeConnectionHandle":
        body = {
            "sessionId": options.session_id,
            "credentials": credentials,
            "browser": list(options.browser),
            "syncFullHistory": options.sync_full_history,
            "markOnlineOnConnect": options.mark_online_on_connect,
        }
        data = await self.request("POST", "/sockets", body, retry=False)
        socket_id = (data or {}).get("socketId")
        if not socket_id:
            raise ChatNetworkError("Bridge did not return a socket id")
        logger.info("Opened bridge socket %s for session %s", socket_id, options.session_id)
        return BridgeConnectionHandle(self, socket_id)

    def _backoff(self, attempt: int) -> float:
        delay = min(1.0 * (2 ** attempt), 30.0)
        return max(0.1, delay + delay * 0.25 * (2 * random.random() - 1))

    async def request(
        self, method: str, path: str, body: Optional[dict] = None, retry: bool = True,
        params: Optional[dict[str, str]] = None,
    ) -> Optional[dict[str, Any]]:
        """Send one request to the bridge and return its decoded JSON body.

        Only requests with ``retry=True`` are repeated on transient
        failures; callers pass ``retry=False`` for anything that must not
        happen twice (sending a message, logging out).
        """
        last_err: Exception | None = None
        attempts = self._max_retries if retry else 1
        for i in range(attempts):
            try:
                resp = await self._client.request(method, path, json=body, params=params)
            except (httpx.TimeoutException, httpx.RequestError) as e:
                last_err = e
                if i < attempts - 1:
                    await asyncio.sleep(self._backoff(i))
                continue
            if resp.status_code in _RETRYABLE_STATUS and i < attempts - 1:
                await asyncio.sleep(self._backoff(i))
                continue
            if resp.status_code >= 400:
                raise ChatNetworkError(
                    f"Bridge {method} {path} returned {resp.status_code}: {resp.text}",
                    status_code=resp.status_code,
                )
            if not resp.content:
                return None
            try:
                return resp.json()
            except ValueError as exc:
                raise ChatNetworkError(f"Bridge returned invalid JSON for {path}") from exc
        raise ChatNetworkError(f"Bridge request failed after {attempts} attempts: {last_err}")

    def stream(self, path: str):
        return self._client.stream("GET", path, timeout=httpx.Timeout(self._timeout, read=None))


class BridgeConnectionHandle:
    """A single socket held open by the bridge."""

    def __init__(self, client: BridgeNetworkClient, socket_id: str) -> None:
        self._client = client
        self._socket_id = socket_id
        self._self_id: Optional[str] = None
        self._listener: Optional[EventListener] = None
        self._pump: Optional[asyncio.Task] = None
        self._closed = False
        self._saw_close = False

    @property
    def socket_id(self) -> str:
        return self._socket_id

    @property
    def self_id(self) -> Optional[str]:
        return self._self_id

    @property
    def closed(self) -> bool:
        return self._closed

    def listen(self, listener: EventListener) -> None:
        if self._listener is not None:
            raise RuntimeError("A listener is already attached to this handle")
        self._listener = listener
        self._pump = asyncio.create_task(self._pump_events(), name=f"bridge-events-{self._socket_id}")

    async def _pump_events(self) -> None:
        path = f"/sockets/{self._socket_id}/events"
        try:
            async with self._client.stream(path) as response:
                if response.status_code >= 400:
                    logger.warning("Event stream for %s returned %s", self._socket_id, response.status_code)
                else:
                    async for line in response.aiter_lines():
                        if not line.strip():
                            continue
                        await self._deliver_line(line)
        except asyncio.CancelledError:
            raise
        except (httpx.TimeoutException, httpx.RequestError) as exc:
            logger.warning("Event stream for %s failed: %s", self._socket_id, exc)
        if not self._closed and not self._saw_close:
            # The bridge vanished without telling us why.
            await self._emit(ConnectionUpdate(
                state=ConnectionState.CLOSE,
                close_cause=DisconnectCause.CONNECTION_LOST,
                raw_cause=int(DisconnectCause.CONNECTION_LOST),
            ))

    async def _deliver_line(self, line: str) -> None:
        try:
            frame = json.loads(line)
            name = frame["event"]
            data = frame.get("data")
        except (ValueError, KeyError, TypeError) as exc:
            logger.warning("Dropping malformed event frame from %s: %s", self._socket_id, exc)
            return
        self._track_identity(name, data)
        try:
            event = decode_event(name, data)
        except EventDecodeError as exc:
            logger.warning("Dropping undecodable %s event from %s: %s", name, self._socket_id, exc)
            return
        if event is None:
            return
        if isinstance(event, ConnectionUpdate) and event.state is ConnectionState.CLOSE:
            self._saw_close = True
        await self._emit(event)

    def _track_identity(self, name: str, data: Any) -> None:
        if not isinstance(data, dict):
            return
        if name == "connection.update" and isinstance(data.get("user"), dict):
            self._self_id = data["user"].get("id") or self._self_id
        elif name == "creds.update" and isinstance(data.get("me"), dict):
            self._self_id = data["me"].get("id") or self._self_id

    async def _emit(self, event: Any) -> None:
        if self._listener is None:
            return
        try:
            await self._listener(event)
        except Exception:
            logger.exception("Listener failed on %s event from %s", event.kind.value, self._socket_id)

    def _path(self, suffix: str) -> str:
        return f"/sockets/{self._socket_id}/{suffix}"

    def _ensure_open(self) -> None:
        if self._closed:
            raise ConnectionClosedError(f"Socket {self._socket_id} is closed")

    async def request_pairing_code(self, phone_number: str) -> str:
        self._ensure_open()
        data = await self._client.request("POST", self._path("pairing-code"), {"phoneNumber": phone_number}, retry=False)
        code = (data or {}).get("code")
        if not code:
            raise ChatNetworkError("Bridge returned no pairing code")
        return code

    async def check_identity_exists(self, identity: str) -> IdentityCheck:
        self._ensure_open()
        data = await self._client.request("GET", self._path("on-whatsapp"), params={"jid": identity}) or {}
        return IdentityCheck(
            exists=bool(data.get("exists")),
            canonical_id=data.get("jid"),
            is_business=bool(data.get("isBusiness", False)),
            verified_name=data.get("verifiedName"),
        )

    async def fetch_status_text(self, identity: str) -> Optional[str]:
        self._ensure_open()
        data = await self._client.request("GET", self._path("status"), params={"jid": identity}) or {}
        return data.get("status")

    async def fetch_profile_picture_url(self, identity: str, quality: PictureQuality) -> Optional[str]:
        self._ensure_open()
        data = await self._client.request(
            "GET", self._path("profile-picture"), params={"jid": identity, "type": quality.value},
        ) or {}
        return data.get("url")

    async def fetch_business_profile(self, identity: str) -> Optional[BusinessProfile]:
        self._ensure_open()
        data = await self._client.request("GET", self._path("business-profile"), params={"jid": identity})
        if not data:
            return None
        website = data.get("website") or []
        if isinstance(website, str):
            website = [website]
        return BusinessProfile(
            description=data.get("description"),
            category=data.get("category"),
            email=data.get("email"),
            website=list(website),
            address=data.get("address"),
            business_hours=data.get("business_hours") or data.get("businessHours"),
        )

    async def fetch_all_groups(self) -> list[dict[str, Any]]:
        self._ensure_open()
        data = await self._client.request("GET", self._path("groups")) or {}
        groups = data.get("groups") or {}
        if isinstance(groups, dict):
            return list(groups.values())
        return list(groups)

    async def send_message(self, identity: str, content: dict[str, Any]) -> dict[str, Any]:
        self._ensure_open()
        body = {"jid": identity, "content": _encode_binary(content)}
        return await self._client.request("POST", self._path("messages"), body, retry=False) or {}

    async def subscribe_presence(self, identity: str) -> None:
        self._ensure_open()
        await self._client.request("POST", self._path("presence-subscribe"), {"jid": identity}, retry=False)

    async def send_presence(self, identity: str, state: PresenceState) -> None:
        self._ensure_open()
        await self._client.request("POST", self._path("presence"), {"jid": identity, "state": state.value}, retry=False)

    async def logout(self) -> None:
        self._ensure_open()
        await self._client.request("POST", self._path("logout"), retry=False)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._pump is not None and self._pump is not asyncio.current_task():
            self._pump.cancel()
            try:
                await self._pump
            except asyncio.CancelledError:
                pass
        try:
            await self._client.request("DELETE", f"/sockets/{self._socket_id}", retry=False)
        except ChatNetworkError as exc:
            logger.warning("Failed to release bridge socket %s: %s", self._socket_id, exc)

"""Tests for the bridge HTTP adapter using httpx.MockTransport."""
import json

import httpx
import pytest

from chatgate.network.base import OpenOptions, PictureQuality, PresenceState
from chatgate.network.bridge import BridgeNetworkClient
from chatgate.network.events import ConnectionState, ConnectionUpdate, QrCodeAvailable
from chatgate.network.exceptions import ChatNetworkError, ConnectionClosedError


def _bridge(handler) -> BridgeNetworkClient:
    return BridgeNetworkClient(
        "http://bridge.test", api_key="secret", max_retries=2, transport=httpx.MockTransport(handler),
    )


class TestBridgeNetworkClient:
    """Tests for opening sockets and request handling."""

    @pytest.mark.asyncio
    async def test_open_posts_session_and_credentials(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["auth"] = request.headers.get("authorization")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"socketId": "sock-1"})

        async with _bridge(handler) as bridge:
            handle = await bridge.open({"me": {"id": "x"}}, OpenOptions(session_id="s1"))

        assert handle.socket_id == "sock-1"
        assert seen["path"] == "/sockets"
        assert seen["auth"] == "Bearer secret"
        assert seen["body"]["sessionId"] == "s1"
        assert seen["body"]["credentials"] == {"me": {"id": "x"}}

    @pytest.mark.asyncio
    async def test_open_without_socket_id_fails(self):
        async with _bridge(lambda r: httpx.Response(200, json={})) as bridge:
            with pytest.raises(ChatNetworkError):
                await bridge.open({}, OpenOptions(session_id="s1"))

    @pytest.mark.asyncio
    async def test_client_error_raises_with_status(self):
        async with _bridge(lambda r: httpx.Response(404, text="nope")) as bridge:
            with pytest.raises(ChatNetworkError) as exc_info:
                await bridge.request("GET", "/sockets/x/status")
        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_retryable_status_is_retried(self, monkeypatch):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            if len(calls) == 1:
                return httpx.Response(503)
            return httpx.Response(200, json={"ok": True})

        async def no_sleep(_):
            return None

        monkeypatch.setattr("chatgate.network.bridge.asyncio.sleep", no_sleep)
        async with _bridge(handler) as bridge:
            assert await bridge.request("GET", "/health") == {"ok": True}
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_non_retry_request_is_sent_once(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(503)

        async with _bridge(handler) as bridge:
            with pytest.raises(ChatNetworkError):
                await bridge.request("POST", "/sockets/x/messages", {"jid": "a"}, retry=False)
        assert len(calls) == 1


class TestBridgeConnectionHandle:
    """Tests for per-socket operations."""

    @pytest.mark.asyncio
    async def test_operations_map_to_socket_endpoints(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            path = request.url.path
            if path == "/sockets":
                return httpx.Response(200, json={"socketId": "s"})
            if path.endswith("/on-whatsapp"):
                return httpx.Response(200, json={"exists": True, "jid": "5511@s.whatsapp.net", "isBusiness": True})
            if path.endswith("/profile-picture"):
                return httpx.Response(200, json={"url": "https://pic"})
            if path.endswith("/business-profile"):
                return httpx.Response(200, json={"description": "Shop", "website": "https://shop"})
            if path.endswith("/groups"):
                return httpx.Response(200, json={"groups": {"g1": {"id": "g1@g.us"}}})
            if path.endswith("/messages"):
                return httpx.Response(200, json={"key": {"id": "M1"}})
            return httpx.Response(204)

        async with _bridge(handler) as bridge:
            handle = await bridge.open({}, OpenOptions(session_id="s1"))
            check = await handle.check_identity_exists("5511@s.whatsapp.net")
            picture = await handle.fetch_profile_picture_url("5511@s.whatsapp.net", PictureQuality.PREVIEW)
            profile = await handle.fetch_business_profile("5511@s.whatsapp.net")
            groups = await handle.fetch_all_groups()
            sent = await handle.send_message("5511@s.whatsapp.net", {"image": b"\x89PNG", "mimetype": "image/png"})
            await handle.send_presence("5511@s.whatsapp.net", PresenceState.COMPOSING)
            await handle.close()

        assert check.exists and check.is_business
        assert picture == "https://pic"
        assert profile.website == ["https://shop"]
        assert groups == [{"id": "g1@g.us"}]
        assert sent == {"key": {"id": "M1"}}

        picture_request = next(r for r in requests if r.url.path.endswith("/profile-picture"))
        assert picture_request.url.params["type"] == "preview"
        message_request = next(r for r in requests if r.url.path.endswith("/messages"))
        assert json.loads(message_request.content)["content"]["image"] == {"base64": "iVBORw=="}
        presence_request = next(r for r in requests if r.url.path.endswith("/presence"))
        assert json.loads(presence_request.content)["state"] == "composing"
        assert requests[-1].method == "DELETE"

    @pytest.mark.asyncio
    async def test_closed_handle_refuses_operations(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/sockets":
                return httpx.Response(200, json={"socketId": "s"})
            return httpx.Response(204)

        async with _bridge(handler) as bridge:
            handle = await bridge.open({}, OpenOptions(session_id="s1"))
            await handle.close()
            assert handle.closed
            with pytest.raises(ConnectionClosedError):
                await handle.fetch_status_text("x")

    @pytest.mark.asyncio
    async def test_event_stream_delivers_decoded_events(self):
        lines = "\n".join([
            json.dumps({"event": "qr", "data": {"qr": "ref-1"}}),
            "not json",
            json.dumps({"event": "connection.update", "data": {"connection": "open", "user": {"id": "5511:2@s.whatsapp.net"}}}),
            json.dumps({"event": "connection.update", "data": {"connection": "close", "closeCause": 401}}),
        ]) + "\n"

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/sockets":
                return httpx.Response(200, json={"socketId": "s"})
            if request.url.path.endswith("/events"):
                return httpx.Response(200, content=lines.encode())
            return httpx.Response(204)

        received = []

        async def listener(event):
            received.append(event)

        async with _bridge(handler) as bridge:
            handle = await bridge.open({}, OpenOptions(session_id="s1"))
            handle.listen(listener)
            await handle._pump
            await handle.close()

        assert received[0] == QrCodeAvailable(payload="ref-1")
        assert received[1].state is ConnectionState.OPEN
        assert received[2].state is ConnectionState.CLOSE
        assert len(received) == 3
        assert handle.self_id == "5511:2@s.whatsapp.net"

    @pytest.mark.asyncio
    async def test_stream_end_without_close_reports_lost_connection(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/sockets":
                return httpx.Response(200, json={"socketId": "s"})
            if request.url.path.endswith("/events"):
                return httpx.Response(200, content=b"")
            return httpx.Response(204)

        received = []

        async def listener(event):
            received.append(event)

        async with _bridge(handler) as bridge:
            handle = await bridge.open({}, OpenOptions(session_id="s1"))
            handle.listen(listener)
            await handle._pump
            await handle.close()

        assert len(received) == 1
        assert isinstance(received[0], ConnectionUpdate)
        assert received[0].state is ConnectionState.CLOSE
        assert received[0].raw_cause == 408

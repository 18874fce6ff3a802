"""Shared fixtures: an in-memory chat network and a wired test server."""
import asyncio
import base64
import json
from pathlib import Path
from typing import Any, Optional

import pytest
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from fastapi.testclient import TestClient

from chatgate.network.base import (
    BusinessProfile,
    EventListener,
    IdentityCheck,
    OpenOptions,
    PictureQuality,
    PresenceState,
)
from chatgate.network.events import ConnectionState, ConnectionUpdate, NetworkEvent
from chatgate.network.exceptions import ChatNetworkError
from chatgate.server.app import create_app
from chatgate.server.config import (
    AuthConfig,
    HumanizeConfig,
    RateLimitConfig,
    ServerConfig,
    SessionConfig,
)
from chatgate.sessions.credentials import FileCredentialStore
from chatgate.sessions.pairing import PairingController
from chatgate.sessions.reconnect import BackoffSettings
from chatgate.sessions.registry import SessionRegistry
from chatgate.sessions.supervisor import SessionSupervisor, SupervisorSettings


def _b64url_encode(data: bytes) -> str:
    """Base64url encode without padding."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _make_jwt(header: dict, payload: dict, private_key: Ed25519PrivateKey) -> str:
    """Create a signed JWT for testing."""
    header_b64 = _b64url_encode(json.dumps(header).encode())
    payload_b64 = _b64url_encode(json.dumps(payload).encode())
    signing_input = f"{header_b64}.{payload_b64}"
    signature = private_key.sign(signing_input.encode("ascii"))
    sig_b64 = _b64url_encode(signature)
    return f"{header_b64}.{payload_b64}.{sig_b64}"


def fake_qr(payload: str) -> str:
    return f"qr:{payload}"


class FakeHandle:
    """In-memory connection handle that records every call it receives.

    Identities listed in ``registered`` exist on the fake network; all
    others do not. Set ``fail`` to a method name to make that call raise.
    """

    def __init__(self, credentials: dict[str, Any], options: OpenOptions) -> None:
        self.credentials = dict(credentials)
        self.options = options
        self.listener: Optional[EventListener] = None
        self.calls: list[tuple] = []
        self.closed = False
        self.logged_out = False
        self.registered: dict[str, IdentityCheck] = {}
        self.status_text: Optional[str] = None
        self.pictures: dict[PictureQuality, Optional[str]] = {}
        self.business: Optional[BusinessProfile] = None
        self.groups: list[dict[str, Any]] = []
        self.pairing_code = "ABCD-1234"
        self.fail: set[str] = set()
        self._self_id: Optional[str] = (credentials.get("me") or {}).get("id")
        self._sent = 0

    @property
    def self_id(self) -> Optional[str]:
        return self._self_id

    def _record(self, name: str, *args: Any) -> None:
        self.calls.append((name, *args))
        if name in self.fail:
            raise ChatNetworkError(f"{name} failed")

    def call_names(self) -> list[str]:
        return [c[0] for c in self.calls]

    def listen(self, listener: EventListener) -> None:
        self.listener = listener

    async def emit(self, event: NetworkEvent) -> None:
        assert self.listener is not None, "no listener attached"
        await self.listener(event)

    async def open_as(self, identity: str) -> None:
        """Authenticate as ``identity`` and report the socket open."""
        self._self_id = identity
        await self.emit(ConnectionUpdate(state=ConnectionState.OPEN))

    async def request_pairing_code(self, phone_number: str) -> str:
        self._record("request_pairing_code", phone_number)
        return self.pairing_code

    async def check_identity_exists(self, identity: str) -> IdentityCheck:
        self._record("check_identity_exists", identity)
        return self.registered.get(identity, IdentityCheck(exists=False))

    async def fetch_status_text(self, identity: str) -> Optional[str]:
        self._record("fetch_status_text", identity)
        return self.status_text

    async def fetch_profile_picture_url(self, identity: str, quality: PictureQuality) -> Optional[str]:
        self._record("fetch_profile_picture_url", identity, quality)
        return self.pictures.get(quality)

    async def fetch_business_profile(self, identity: str) -> Optional[BusinessProfile]:
        self._record("fetch_business_profile", identity)
        return self.business

    async def fetch_all_groups(self) -> list[dict[str, Any]]:
        self._record("fetch_all_groups")
        return self.groups

    async def send_message(self, identity: str, content: dict[str, Any]) -> dict[str, Any]:
        self._record("send_message", identity, content)
        self._sent += 1
        return {"key": {"id": f"MSG{self._sent}", "remoteJid": identity, "fromMe": True}}

    async def subscribe_presence(self, identity: str) -> None:
        self._record("subscribe_presence", identity)

    async def send_presence(self, identity: str, state: PresenceState) -> None:
        self._record("send_presence", identity, state)

    async def logout(self) -> None:
        self._record("logout")
        self.logged_out = True

    async def close(self) -> None:
        self.closed = True


class FakeNetworkClient:
    """Opens ``FakeHandle`` connections and keeps every one it opened."""

    def __init__(self) -> None:
        self.handles: list[FakeHandle] = []
        self.fail_open = False

    async def open(self, credentials: dict[str, Any], options: OpenOptions) -> FakeHandle:
        if self.fail_open:
            raise ChatNetworkError("network unreachable")
        handle = FakeHandle(credentials, options)
        self.handles.append(handle)
        return handle

    def handles_for(self, session_id: str) -> list[FakeHandle]:
        return [h for h in self.handles if h.options.session_id == session_id]

    def latest(self, session_id: Optional[str] = None) -> FakeHandle:
        handles = self.handles if session_id is None else self.handles_for(session_id)
        return handles[-1]


FAST_SUPERVISOR = SupervisorSettings(bootstrap_poll_interval=0.01, bootstrap_max_attempts=10, sweep_interval=3600)
FAST_BACKOFF = BackoffSettings(base_delay=0.01, max_delay=0.05, max_attempts=3, restart_delay=0.01)


@pytest.fixture
def network() -> FakeNetworkClient:
    return FakeNetworkClient()


@pytest.fixture
def registry() -> SessionRegistry:
    return SessionRegistry()


@pytest.fixture
def store(tmp_path: Path) -> FileCredentialStore:
    return FileCredentialStore(tmp_path / "sessions")


@pytest.fixture
def supervisor(registry, network, store) -> SessionSupervisor:
    return SessionSupervisor(
        registry,
        network,
        store,
        settings=FAST_SUPERVISOR,
        backoff=FAST_BACKOFF,
        pairing=PairingController(qr_encoder=fake_qr),
    )


@pytest.fixture
def owner_keypair():
    """Ed25519 keypair of the account service that signs bearer tokens."""
    private_key = Ed25519PrivateKey.generate()
    public_key = private_key.public_key()
    public_bytes = public_key.public_bytes_raw()
    return private_key, public_bytes


@pytest.fixture
def server_config(owner_keypair, tmp_path: Path) -> ServerConfig:
    _, public_bytes = owner_keypair
    return ServerConfig(
        auth=AuthConfig(public_key=public_bytes),
        sessions=SessionConfig(
            auth_dir=tmp_path / "sessions", bootstrap_poll_interval=0.01, bootstrap_max_attempts=3,
        ),
        humanize=HumanizeConfig(enabled=False),
        rate_limit=RateLimitConfig(requests_per_minute=1000),
        db_path=tmp_path / "test.db",
    )


@pytest.fixture
def client(server_config: ServerConfig, network: FakeNetworkClient) -> TestClient:
    app = create_app(server_config, network_client=network)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def auth_headers(owner_keypair) -> dict[str, str]:
    """Bearer header for owner ``owner-1``."""
    private_key, _ = owner_keypair
    token = _make_jwt({"alg": "EdDSA", "typ": "JWT"}, {"sub": "owner-1"}, private_key)
    return {"Authorization": f"Bearer {token}"}


async def eventually(predicate, timeout: float = 1.0, interval: float = 0.005) -> None:
    """Poll ``predicate`` until it holds or fail after ``timeout`` seconds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(interval)

"""Session supervisor: creates, restarts, removes and restores sessions."""
import asyncio
import logging
import re
import uuid
from collections import deque
from dataclasses import dataclass
from typing import Optional, Protocol, Union

from chatgate.errors import GatewayError, InvalidArgumentError, NotFoundError, UpstreamFailureError
from chatgate.network.base import ChatNetworkClient, ConnectionHandle, OpenOptions
from chatgate.sessions.credentials import FileCredentialStore
from chatgate.sessions.models import (
    BoundedMap,
    PairingMethod,
    PairingResult,
    SessionState,
    SessionStatus,
    SessionSummary,
)
from chatgate.sessions.pairing import PairingController
from chatgate.sessions.reconciler import EventReconciler, EventSink
from chatgate.sessions.reconnect import BackoffSettings, ReconnectionPolicy
from chatgate.sessions.registry import SessionRegistry

logger = logging.getLogger(__name__)

_NON_DIGITS = re.compile(r"\D")
PHONE_MIN_DIGITS = 10
PHONE_MAX_DIGITS = 15


class Ledger(Protocol):
    """Credit ledger consulted before a session is provisioned."""

    async def debit(self, owner_id: str, amount: int, category: str, description: str, related_id: str) -> int: ...

    async def refund(self, owner_id: str, amount: int, description: str, related_id: str) -> int: ...


@dataclass(frozen=True)
class SupervisorSettings:
    """Bootstrap, sweeping, billing and buffer limits.

    The bootstrap wait is bounded: at most ``bootstrap_max_attempts``
    sleeps of ``bootstrap_poll_interval`` seconds.
    """

    bootstrap_poll_interval: float = 1.0
    bootstrap_max_attempts: int = 15
    sweep_interval: float = 60.0
    session_cost: int = 0
    contacts_limit: int = 5000
    chats_limit: int = 1000
    messages_limit: int = 1000


def normalize_phone_number(raw: Optional[str]) -> str:
    """Strip everything but digits and check the length.

    Raises:
        InvalidArgumentError: If fewer than 10 or more than 15 digits remain.
    """
    digits = _NON_DIGITS.sub("", raw or "")
    if not PHONE_MIN_DIGITS <= len(digits) <= PHONE_MAX_DIGITS:
        raise InvalidArgumentError(
            f"Phone number must have {PHONE_MIN_DIGITS}-{PHONE_MAX_DIGITS} digits",
            {"phone_number": raw},
        )
    return digits


def _coerce_method(method: Union[PairingMethod, str]) -> PairingMethod:
    if isinstance(method, PairingMethod):
        return method
    try:
        return PairingMethod(method)
    except ValueError as exc:
        raise InvalidArgumentError(f"Unknown pairing method: {method!r}") from exc


class SessionSupervisor:
    """Owns the lifecycle of every session in the process.

    Implements ``reconnect`` for the reconnection policy, which calls it
    when a scheduled retry fires.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        client: ChatNetworkClient,
        store: FileCredentialStore,
        settings: Optional[SupervisorSettings] = None,
        backoff: Optional[BackoffSettings] = None,
        pairing: Optional[PairingController] = None,
        event_sink: Optional[EventSink] = None,
        ledger: Optional[Ledger] = None,
    ) -> None:
        self._registry = registry
        self._client = client
        self._store = store
        self._settings = settings or SupervisorSettings()
        self._ledger = ledger
        self._sink = event_sink
        self._policy = ReconnectionPolicy(registry, self, backoff)
        self._reconciler = EventReconciler(registry, pairing or PairingController(), self._policy, event_sink)
        self._sweeper: Optional[asyncio.Task] = None
        self._closing = False

    @property
    def registry(self) -> SessionRegistry:
        return self._registry

    @property
    def policy(self) -> ReconnectionPolicy:
        return self._policy

    @property
    def reconciler(self) -> EventReconciler:
        return self._reconciler

    async def create(
        self,
        owner_id: str,
        pairing_method: Union[PairingMethod, str] = PairingMethod.QR,
        phone_number: Optional[str] = None,
    ) -> PairingResult:
        """Provision and open a new session, waiting briefly for a QR or code.

        Raises:
            InvalidArgumentError: Bad pairing method or phone number.
            InsufficientBalanceError: The ledger refused the session cost.
            UpstreamFailureError: The connection could not be opened.
        """
        if not owner_id:
            raise InvalidArgumentError("owner_id is required")
        method = _coerce_method(pairing_method)
        phone = None
        if method is PairingMethod.CODE:
            if not phone_number:
                raise InvalidArgumentError("phoneNumber is required for code pairing")
            phone = normalize_phone_number(phone_number)

        session_id = str(uuid.uuid4())
        charged = await self._charge(owner_id, session_id)
        state = self._new_state(session_id, owner_id, method, phone)
        self._registry.add(state)
        try:
            self._store.provision(state.key)
            await self._open_session(state)
        except Exception as exc:
            logger.error("Failed to provision session %s: %s", session_id, exc)
            await self._teardown(state, delete_credentials=True)
            if charged:
                await self._refund(owner_id, session_id)
            if isinstance(exc, GatewayError):
                raise
            raise UpstreamFailureError(f"Failed to open connection: {exc}") from exc
        logger.info("Created session %s for owner %s (pairing=%s)", session_id, owner_id, method.value)
        return await self._await_pairing(state)

    async def restart(self, owner_id: str, session_id: str) -> PairingResult:
        """Reopen a session from its stored credentials.

        Raises:
            NotFoundError: If the session is absent or not owned by ``owner_id``.
            UpstreamFailureError: If the new connection could not be opened;
                the session is then left to the reconnection policy.
        """
        state = self._registry.lookup(owner_id, session_id)
        state.reconnect_timer.cancel()
        state.desired_connected = True
        state.reconnect_attempts = 0
        try:
            await self._open_session(state)
        except Exception as exc:
            logger.error("Restart of session %s failed: %s", session_id, exc)
            if self._registry.get(session_id) is state and state.connection_handle is None:
                state.status = SessionStatus.DISCONNECTED
                state.clear_pairing()
                self._policy.on_disconnect(state, None)
            raise UpstreamFailureError(f"Failed to restart connection: {exc}") from exc
        logger.info("Restarted session %s", session_id)
        return await self._await_pairing(state)

    async def remove(self, owner_id: str, session_id: str) -> bool:
        """Log out and delete a session. Returns False if it did not exist.

        Raises:
            NotFoundError: If the session exists but belongs to another owner.
        """
        state = self._registry.get(session_id)
        if state is None:
            return False
        if state.owner_id != owner_id:
            raise NotFoundError(session_id=session_id)
        state.desired_connected = False
        state.reconnect_timer.cancel()
        handle = state.connection_handle
        if handle is not None:
            try:
                await handle.logout()
            except Exception as exc:
                logger.warning("Logout of session %s failed: %s", session_id, exc)
        await self._teardown(state, delete_credentials=True)
        logger.info("Removed session %s", session_id)
        return True

    def list(self, owner_id: Optional[str] = None) -> list[SessionSummary]:
        states = self._registry.all() if owner_id is None else self._registry.for_owner(owner_id)
        return [s.summary() for s in sorted(states, key=lambda s: s.created_at)]

    def get(self, owner_id: str, session_id: str) -> SessionSummary:
        return self._registry.lookup(owner_id, session_id).summary()

    async def sweep(self) -> int:
        """Delete every session that is disconnected and no longer wanted."""
        removed = 0
        for state in self._registry:
            if state.status is SessionStatus.DISCONNECTED and not state.desired_connected:
                await self._teardown(state, delete_credentials=True)
                removed += 1
        if removed:
            logger.info("Swept %d dead sessions", removed)
        return removed

    async def restore_all(self) -> int:
        """Reopen every session with usable stored credentials.

        Directories without authenticated credentials are deleted.
        Restored sessions pair by QR; they normally reconnect without
        any pairing at all.
        """
        restored = 0
        for key in self._store.enumerate():
            if key.session_id in self._registry:
                continue
            if not self._store.has_valid_credentials(key):
                logger.info("Deleting credential directory without valid credentials: %s", key.session_id)
                self._store.delete(key)
                continue
            state = self._new_state(key.session_id, key.owner_id, PairingMethod.QR, None)
            self._registry.add(state)
            try:
                await self._open_session(state)
            except Exception as exc:
                logger.error("Failed to restore session %s: %s", key.session_id, exc)
                if self._registry.get(key.session_id) is state and state.connection_handle is None:
                    state.status = SessionStatus.DISCONNECTED
                    self._policy.on_disconnect(state, None)
                continue
            restored += 1
        logger.info("Restored %d sessions", restored)
        return restored

    async def reconnect(self, session_id: str) -> None:
        state = self._registry.get(session_id)
        if state is None or self._closing:
            return
        await self._open_session(state)

    def start(self) -> None:
        """Start the periodic sweeper."""
        self._closing = False
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self._sweep_loop(), name="session-sweeper")

    async def shutdown(self) -> None:
        """Close every connection without deleting credentials."""
        self._closing = True
        if self._sweeper is not None:
            self._sweeper.cancel()
            try:
                await self._sweeper
            except asyncio.CancelledError:
                pass
            self._sweeper = None
        for state in self._registry:
            state.reconnect_timer.cancel()
            handle = state.connection_handle
            state.connection_handle = None
            state.status = SessionStatus.DISCONNECTED
            state.clear_pairing()
            if handle is not None:
                await self._close_handle(handle, state.session_id)
        logger.info("Supervisor stopped with %d sessions", len(self._registry))

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._settings.sweep_interval)
            try:
                await self.sweep()
            except Exception:
                logger.exception("Session sweep failed")

    def _new_state(
        self, session_id: str, owner_id: str, method: PairingMethod, phone: Optional[str],
    ) -> SessionState:
        s = self._settings
        return SessionState(
            session_id=session_id,
            owner_id=owner_id,
            pairing_method=method,
            phone_number=phone,
            contacts=BoundedMap(s.contacts_limit),
            chats=BoundedMap(s.chats_limit),
            recent_messages=deque(maxlen=s.messages_limit),
        )

    async def _open_session(self, state: SessionState) -> None:
        """Replace the session's connection with a freshly opened one.

        The previous handle is detached and closed before the new one is
        opened, so two live sockets never share the same credentials.
        """
        previous = state.connection_handle
        state.connection_handle = None
        if previous is not None:
            await self._close_handle(previous, state.session_id)
        bundle = self._store.load(state.key)
        handle = await self._client.open(bundle.credentials, OpenOptions(session_id=state.session_id))
        if self._closing or self._registry.get(state.session_id) is not state:
            logger.info("Session %s went away while connecting, closing new handle", state.session_id)
            await self._close_handle(handle, state.session_id)
            return
        # A concurrent reopen may have installed its own handle meanwhile.
        superseded = state.connection_handle
        state.connection_handle = handle
        state.status = SessionStatus.CONNECTING
        state.clear_pairing()
        if superseded is not None:
            await self._close_handle(superseded, state.session_id)
        self._reconciler.attach(state, handle, bundle)

    async def _await_pairing(self, state: SessionState) -> PairingResult:
        for _ in range(self._settings.bootstrap_max_attempts):
            if self._bootstrap_settled(state):
                break
            await asyncio.sleep(self._settings.bootstrap_poll_interval)
        return PairingResult(
            session_id=state.session_id,
            pairing_method=state.pairing_method,
            status=state.status,
            qr_payload=state.qr_payload,
            pairing_code=state.pairing_code,
        )

    def _bootstrap_settled(self, state: SessionState) -> bool:
        if self._registry.get(state.session_id) is not state:
            return True
        if state.qr_payload or state.pairing_code:
            return True
        if state.status is SessionStatus.CONNECTED:
            return True
        return state.status is SessionStatus.DISCONNECTED and not state.desired_connected

    async def _teardown(self, state: SessionState, delete_credentials: bool) -> None:
        state.reconnect_timer.cancel()
        handle = state.connection_handle
        state.connection_handle = None
        if self._registry.get(state.session_id) is state:
            self._registry.discard(state.session_id)
        if handle is not None:
            await self._close_handle(handle, state.session_id)
        if delete_credentials:
            try:
                self._store.delete(state.key)
            except OSError as exc:
                logger.warning("Failed to delete credentials of session %s: %s", state.session_id, exc)
            await self._forget_messages(state)

    async def _forget_messages(self, state: SessionState) -> None:
        if self._sink is None:
            return
        try:
            await self._sink.forget(state.owner_id, state.session_id)
        except Exception as exc:
            logger.warning("Failed to drop message log of session %s: %s", state.session_id, exc)

    async def _close_handle(self, handle: ConnectionHandle, session_id: str) -> None:
        try:
            await handle.close()
        except Exception as exc:
            logger.warning("Error closing connection of session %s: %s", session_id, exc)

    async def _charge(self, owner_id: str, session_id: str) -> bool:
        cost = self._settings.session_cost
        if self._ledger is None or cost <= 0:
            return False
        await self._ledger.debit(owner_id, cost, "connection", f"Session {session_id}", session_id)
        return True

    async def _refund(self, owner_id: str, session_id: str) -> None:
        try:
            await self._ledger.refund(
                owner_id, self._settings.session_cost, f"Refund for failed session {session_id}", session_id,
            )
        except Exception as exc:
            logger.error("Refund for session %s failed: %s", session_id, exc)

"""Reconnection policy: what to do after the network closes a session.

Decisions are made by ``ReconnectionPolicy.decide`` from three inputs
(close cause, whether the session should stay up, attempts so far) and
evaluated in priority order:

1. restart required: recreate the connection after a short fixed delay;
2. permanent cause: stop wanting the connection, schedule nothing;
3. wanted and under the attempt limit: retry after exponential backoff;
4. otherwise: give up.

``on_disconnect`` applies a decision to a session, and ``_fire`` is what
a scheduled timer runs. It re-reads the session before acting because
the session may have been removed or reconnected in the meantime.
"""
import functools
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol

from chatgate.network.disconnect import DisconnectCause, is_permanent
from chatgate.sessions.models import SessionState, SessionStatus
from chatgate.sessions.registry import SessionRegistry

logger = logging.getLogger(__name__)


class ReconnectRequester(Protocol):
    """Capability to rebuild a session's connection from stored credentials."""

    async def reconnect(self, session_id: str) -> None: ...


class ReconnectAction(Enum):
    RESURRECT = "resurrect"
    RETRY = "retry"
    GIVE_UP = "give_up"


@dataclass(frozen=True)
class ReconnectDecision:
    action: ReconnectAction
    delay: Optional[float] = None
    reason: str = ""


@dataclass(frozen=True)
class BackoffSettings:
    """Tunables for reconnect scheduling. Delays are in seconds."""

    base_delay: float = 2.0
    exponent_cap: int = 5
    max_delay: float = 30.0
    max_attempts: int = 10
    restart_delay: float = 1.0

    def __post_init__(self) -> None:
        if self.base_delay <= 0 or self.max_delay <= 0 or self.restart_delay < 0:
            raise ValueError("Reconnect delays must be positive")
        if self.max_attempts < 0 or self.exponent_cap < 0:
            raise ValueError("max_attempts and exponent_cap cannot be negative")


class ReconnectionPolicy:
    """Classifies disconnects and schedules reconnects through session timers."""

    def __init__(
        self,
        registry: SessionRegistry,
        requester: ReconnectRequester,
        settings: Optional[BackoffSettings] = None,
    ) -> None:
        self._registry = registry
        self._requester = requester
        self._settings = settings or BackoffSettings()

    @property
    def settings(self) -> BackoffSettings:
        return self._settings

    def backoff_delay(self, attempts: int) -> float:
        s = self._settings
        return min(s.max_delay, s.base_delay * (2 ** min(attempts, s.exponent_cap)))

    def decide(
        self, cause: Optional[DisconnectCause], desired_connected: bool, attempts: int,
    ) -> ReconnectDecision:
        if cause is DisconnectCause.RESTART_REQUIRED:
            return ReconnectDecision(ReconnectAction.RESURRECT, self._settings.restart_delay, "restart required")
        if is_permanent(cause):
            return ReconnectDecision(ReconnectAction.GIVE_UP, None, f"permanent cause {cause.name}")
        if desired_connected and attempts < self._settings.max_attempts:
            return ReconnectDecision(ReconnectAction.RETRY, self.backoff_delay(attempts), "transient disconnect")
        if not desired_connected:
            return ReconnectDecision(ReconnectAction.GIVE_UP, None, "connection no longer wanted")
        return ReconnectDecision(ReconnectAction.GIVE_UP, None, "reconnect attempts exhausted")

    def on_disconnect(self, state: SessionState, cause: Optional[DisconnectCause]) -> ReconnectDecision:
        """Apply the policy to a session that has just entered DISCONNECTED."""
        decision = self.decide(cause, state.desired_connected, state.reconnect_attempts)
        if decision.action is ReconnectAction.GIVE_UP:
            state.desired_connected = False
            state.reconnect_timer.cancel()
            logger.info("Session %s will not reconnect: %s", state.session_id, decision.reason)
            return decision
        resurrect = decision.action is ReconnectAction.RESURRECT
        state.reconnect_timer.schedule(
            decision.delay, functools.partial(self._fire, state.session_id, resurrect),
        )
        logger.info(
            "Session %s %s in %.1fs (attempt %d): %s",
            state.session_id,
            "recreating" if resurrect else "reconnecting",
            decision.delay,
            state.reconnect_attempts + (0 if resurrect else 1),
            decision.reason,
        )
        return decision

    async def _fire(self, session_id: str, resurrect: bool) -> None:
        state = self._registry.get(session_id)
        if state is None:
            logger.debug("Reconnect timer fired for removed session %s", session_id)
            return
        if not state.desired_connected or state.status is not SessionStatus.DISCONNECTED:
            logger.debug(
                "Skipping reconnect for %s (desired=%s status=%s)",
                session_id, state.desired_connected, state.status.value,
            )
            return
        if not resurrect:
            state.reconnect_attempts += 1
        try:
            await self._requester.reconnect(session_id)
        except Exception as exc:
            logger.warning("Reconnect of session %s failed: %s", session_id, exc)
            if self._registry.get(session_id) is not state:
                return
            state.status = SessionStatus.DISCONNECTED
            state.clear_pairing()
            self.on_disconnect(state, None)

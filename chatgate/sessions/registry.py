"""In-memory registry of live sessions."""
from typing import Iterator, Optional

from chatgate.errors import NotFoundError
from chatgate.sessions.models import SessionState


class SessionRegistry:
    """Maps session ids to their live state for the lifetime of the process.

    One instance is built by the application factory and shared by the
    supervisor, the reconciler and the outbound gateway.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, SessionState] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def __iter__(self) -> Iterator[SessionState]:
        return iter(list(self._sessions.values()))

    def add(self, state: SessionState) -> None:
        if state.session_id in self._sessions:
            raise ValueError(f"Session {state.session_id} already registered")
        self._sessions[state.session_id] = state

    def get(self, session_id: str) -> Optional[SessionState]:
        return self._sessions.get(session_id)

    def lookup(self, owner_id: str, session_id: str) -> SessionState:
        """Return the session if it exists and belongs to ``owner_id``.

        Raises:
            NotFoundError: If the session is absent or owned by someone else.
        """
        state = self._sessions.get(session_id)
        if state is None or state.owner_id != owner_id:
            raise NotFoundError(session_id=session_id)
        return state

    def discard(self, session_id: str) -> Optional[SessionState]:
        return self._sessions.pop(session_id, None)

    def all(self) -> list[SessionState]:
        return list(self._sessions.values())

    def for_owner(self, owner_id: str) -> list[SessionState]:
        return [s for s in self._sessions.values() if s.owner_id == owner_id]

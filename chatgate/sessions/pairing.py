"""Drives the QR or pairing-code handshake while a session bootstraps."""
import logging
from typing import Callable, Optional

from chatgate.network.base import ConnectionHandle
from chatgate.sessions.models import PairingMethod, SessionState, SessionStatus
from chatgate.sessions.qr import qr_to_data_url

logger = logging.getLogger(__name__)


class PairingController:
    """Applies pairing events to a session.

    QR sessions show every QR the network rotates in. Code sessions ask
    the network for a pairing code once per connection; if that request
    fails the session switches to QR pairing for good.
    """

    def __init__(self, qr_encoder: Callable[[str], str] = qr_to_data_url) -> None:
        self._encode = qr_encoder

    def on_qr(self, state: SessionState, payload: str) -> bool:
        """Store a freshly rotated QR. Returns False when not pairing by QR."""
        if state.pairing_method is not PairingMethod.QR:
            return False
        if state.status is SessionStatus.CONNECTED:
            logger.debug("Ignoring QR for already connected session %s", state.session_id)
            return False
        state.qr_payload = self._encode(payload)
        state.pairing_code = None
        state.status = SessionStatus.QR_PENDING
        logger.info("QR code ready for session %s", state.session_id)
        return True

    def needs_code(self, state: SessionState) -> bool:
        return (
            state.pairing_method is PairingMethod.CODE
            and bool(state.phone_number)
            and not state.pairing_code
            and state.status is not SessionStatus.CONNECTED
        )

    async def maybe_request_code(
        self, state: SessionState, handle: ConnectionHandle, qr: Optional[str] = None,
    ) -> None:
        """Request a pairing code if the session is waiting for one.

        ``qr`` is the raw QR that arrived with the triggering event, if
        any. It lets a failed code request fall back to QR pairing
        without waiting for the next rotation.
        """
        if not self.needs_code(state):
            return
        try:
            code = await handle.request_pairing_code(state.phone_number)
        except Exception as exc:
            logger.warning(
                "Pairing code request failed for session %s, falling back to QR: %s",
                state.session_id, exc,
            )
            self._fall_back_to_qr(state, handle, qr)
            return
        if state.connection_handle is not handle:
            logger.debug("Discarding pairing code for replaced handle on %s", state.session_id)
            return
        state.pairing_code = code
        state.qr_payload = None
        state.status = SessionStatus.CODE_PENDING
        logger.info("Pairing code ready for session %s", state.session_id)

    def _fall_back_to_qr(self, state: SessionState, handle: ConnectionHandle, qr: Optional[str]) -> None:
        if state.connection_handle is not handle:
            return
        state.pairing_method = PairingMethod.QR
        state.pairing_code = None
        if qr:
            self.on_qr(state, qr)
        # Without a QR in hand the session stays CONNECTING until the
        # network rotates one in, so QR_PENDING always has a payload.

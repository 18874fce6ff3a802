"""Session supervision: registry, pairing, reconciliation and reconnects."""
from chatgate.sessions.credentials import CredentialBundle, CredentialStoreError, FileCredentialStore
from chatgate.sessions.models import (
    BoundedMap, PairingMethod, PairingResult, SessionKey, SessionState, SessionStatus, SessionSummary,
)
from chatgate.sessions.pairing import PairingController
from chatgate.sessions.qr import qr_to_data_url
from chatgate.sessions.reconciler import EventReconciler, EventSink, number_from_identity
from chatgate.sessions.reconnect import (
    BackoffSettings, ReconnectAction, ReconnectDecision, ReconnectionPolicy, ReconnectRequester,
)
from chatgate.sessions.registry import SessionRegistry
from chatgate.sessions.supervisor import Ledger, SessionSupervisor, SupervisorSettings, normalize_phone_number
from chatgate.sessions.timer import ReconnectTimer
__all__ = ["CredentialBundle", "CredentialStoreError", "FileCredentialStore",
           "BoundedMap", "PairingMethod", "PairingResult", "SessionKey", "SessionState", "SessionStatus",
           "SessionSummary", "PairingController", "qr_to_data_url", "EventReconciler", "EventSink",
           "number_from_identity", "BackoffSettings", "ReconnectAction", "ReconnectDecision",
           "ReconnectionPolicy", "ReconnectRequester", "SessionRegistry", "Ledger", "SessionSupervisor",
           "SupervisorSettings", "normalize_phone_number", "ReconnectTimer"]

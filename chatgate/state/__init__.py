"""Gateway persistence: credit ledger and inbound message log."""
from chatgate.state.database import DatabaseManager, DatabaseError
from chatgate.state.ledger import SqliteLedger
from chatgate.state.models import LedgerStats, LedgerTransaction, StoredMessage, TransactionCategory, TransactionType
from chatgate.state.repositories import InboundMessageRepository, LedgerRepository
from chatgate.state.sink import SqliteEventSink
__all__ = ["DatabaseManager", "DatabaseError", "SqliteLedger", "LedgerStats", "LedgerTransaction", "StoredMessage",
           "TransactionCategory", "TransactionType", "InboundMessageRepository", "LedgerRepository",
           "SqliteEventSink"]

"""State models."""
from chatgate.state.models.ledger import LedgerStats, LedgerTransaction, TransactionCategory, TransactionType
from chatgate.state.models.message import StoredMessage
__all__ = ["LedgerStats", "LedgerTransaction", "TransactionCategory", "TransactionType", "StoredMessage"]

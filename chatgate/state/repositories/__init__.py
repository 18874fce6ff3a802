"""Repositories."""
from chatgate.state.repositories.ledger import LedgerRepository
from chatgate.state.repositories.messages import InboundMessageRepository
__all__ = ["LedgerRepository", "InboundMessageRepository"]

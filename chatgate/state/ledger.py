"""Credit ledger backed by the gateway database.

Amounts are whole credits. Debits that would overdraw the balance raise
``InsufficientBalanceError`` and leave the balance untouched.
"""
import logging
from typing import Optional, Union

from chatgate.state.database import DatabaseManager
from chatgate.state.models.ledger import LedgerStats, LedgerTransaction, TransactionCategory, TransactionType
from chatgate.state.repositories.ledger import LedgerRepository

logger = logging.getLogger(__name__)

_DEBIT_CATEGORIES = {TransactionCategory.CONNECTION, TransactionCategory.VALIDATION}


def _positive(amount: int) -> int:
    if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
        raise ValueError(f"amount must be a positive integer, got {amount!r}")
    return amount


class SqliteLedger:
    def __init__(self, db_manager: DatabaseManager) -> None:
        self._db = db_manager

    async def balance(self, owner_id: str) -> int:
        async with self._db.connection() as conn:
            return await LedgerRepository(conn).get_balance(owner_id)

    async def debit(
        self,
        owner_id: str,
        amount: int,
        category: Union[TransactionCategory, str],
        description: str,
        related_id: Optional[str] = None,
    ) -> int:
        """Charge ``amount`` credits and return the new balance.

        Raises:
            ValueError: Non-positive amount or a category that cannot be charged.
            InsufficientBalanceError: The balance does not cover the charge.
        """
        category = TransactionCategory(category)
        if category not in _DEBIT_CATEGORIES:
            raise ValueError(f"cannot debit with category {category.value!r}")
        txn = await self._apply(owner_id, -_positive(amount), category, description, related_id)
        return txn.balance_after

    async def refund(self, owner_id: str, amount: int, description: str, related_id: Optional[str] = None) -> int:
        txn = await self._apply(owner_id, _positive(amount), TransactionCategory.REFUND, description, related_id)
        return txn.balance_after

    async def deposit(self, owner_id: str, amount: int, description: str = "") -> LedgerTransaction:
        amount = _positive(amount)
        return await self._apply(
            owner_id, amount, TransactionCategory.DEPOSIT, description or f"Deposit of {amount} credits", None,
        )

    async def transactions(
        self, owner_id: str, limit: int = 20, offset: int = 0, txn_type: Optional[TransactionType] = None,
    ) -> list[LedgerTransaction]:
        async with self._db.connection() as conn:
            return await LedgerRepository(conn).list_transactions(owner_id, limit, offset, txn_type)

    async def stats(self, owner_id: str) -> LedgerStats:
        async with self._db.connection() as conn:
            return await LedgerRepository(conn).get_stats(owner_id)

    async def _apply(
        self,
        owner_id: str,
        amount: int,
        category: TransactionCategory,
        description: str,
        related_id: Optional[str],
    ) -> LedgerTransaction:
        async with self._db.connection() as conn:
            txn = await LedgerRepository(conn).apply(owner_id, amount, category, description, related_id)
        logger.info(
            "Ledger %s %+d for owner=%s (%s): %d -> %d",
            category.value, amount, owner_id, related_id or "-", txn.balance_before, txn.balance_after,
        )
        return txn

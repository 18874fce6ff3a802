"""Ledger repository for balances and their transaction history."""
import aiosqlite
from dataclasses import replace
from datetime import datetime, timezone
from typing import Optional

from chatgate.errors import InsufficientBalanceError
from chatgate.state.models.ledger import LedgerStats, LedgerTransaction, TransactionCategory, TransactionType

_MAX_LIST_LIMIT = 100


class LedgerRepository:
    """Applies balance movements and records each one as a transaction.

    A movement updates ``balances`` and inserts into
    ``ledger_transactions`` in one commit. Debits are conditional on the
    balance covering them, so a balance can never go negative.
    """

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def get_balance(self, owner_id: str) -> int:
        cursor = await self._conn.execute(
            "SELECT balance FROM balances WHERE owner_id = ?", (owner_id,),
        )
        row = await cursor.fetchone()
        return row["balance"] if row else 0

    async def apply(
        self,
        owner_id: str,
        amount: int,
        category: TransactionCategory,
        description: str,
        related_id: Optional[str] = None,
    ) -> LedgerTransaction:
        """Move ``amount`` credits (negative to debit) and record it.

        Args:
            owner_id: The account to update.
            amount: Signed, non-zero credit delta.
            category: Reason for the movement.
            description: Note stored with the transaction.
            related_id: Optional entity the movement concerns.

        Returns:
            The recorded transaction.

        Raises:
            ValueError: If amount is zero.
            InsufficientBalanceError: If a debit exceeds the balance.
        """
        if not isinstance(amount, int) or amount == 0:
            raise ValueError(f"amount must be a non-zero integer, got {amount!r}")
        now = datetime.now(timezone.utc)
        await self._conn.execute(
            "INSERT OR IGNORE INTO balances (owner_id, balance, updated_at) VALUES (?, 0, ?)",
            (owner_id, now.isoformat()),
        )
        before = await self.get_balance(owner_id)
        cursor = await self._conn.execute(
            "UPDATE balances SET balance = balance + ?, updated_at = ? "
            "WHERE owner_id = ? AND balance + ? >= 0",
            (amount, now.isoformat(), owner_id, amount),
        )
        if cursor.rowcount == 0:
            await self._conn.rollback()
            raise InsufficientBalanceError(required=-amount, available=before)
        txn = LedgerTransaction(
            owner_id=owner_id,
            amount=amount,
            type=TransactionType.CREDIT if amount > 0 else TransactionType.DEBIT,
            category=category,
            description=description,
            related_id=related_id,
            balance_before=before,
            balance_after=before + amount,
            created_at=now,
        )
        cursor = await self._conn.execute(
            "INSERT INTO ledger_transactions (owner_id, amount, type, category, "
            "description, related_id, balance_before, balance_after, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                txn.owner_id, txn.amount, txn.type.value, txn.category.value,
                txn.description, txn.related_id, txn.balance_before,
                txn.balance_after, txn.created_at.isoformat(),
            ),
        )
        await self._conn.commit()
        return replace(txn, id=cursor.lastrowid)

    async def list_transactions(
        self,
        owner_id: str,
        limit: int = 20,
        offset: int = 0,
        txn_type: Optional[TransactionType] = None,
    ) -> list[LedgerTransaction]:
        """List an owner's transactions, newest first."""
        if not isinstance(limit, int) or limit < 1:
            raise ValueError(f"limit must be a positive integer, got {limit!r}")
        capped = min(limit, _MAX_LIST_LIMIT)
        if txn_type is not None:
            cursor = await self._conn.execute(
                "SELECT * FROM ledger_transactions WHERE owner_id = ? AND type = ? "
                "ORDER BY id DESC LIMIT ? OFFSET ?",
                (owner_id, txn_type.value, capped, max(offset, 0)),
            )
        else:
            cursor = await self._conn.execute(
                "SELECT * FROM ledger_transactions WHERE owner_id = ? "
                "ORDER BY id DESC LIMIT ? OFFSET ?",
                (owner_id, capped, max(offset, 0)),
            )
        rows = await cursor.fetchall()
        return [self._row_to_transaction(r) for r in rows]

    async def get_stats(self, owner_id: str) -> LedgerStats:
        """Totals per transaction type and category, plus the current balance."""
        cursor = await self._conn.execute(
            "SELECT type, category, SUM(amount) AS total, COUNT(*) AS n FROM ledger_transactions "
            "WHERE owner_id = ? GROUP BY type, category",
            (owner_id,),
        )
        totals = {
            (TransactionType(r["type"]), TransactionCategory(r["category"])): (abs(r["total"]), r["n"])
            for r in await cursor.fetchall()
        }
        debit, credit = TransactionType.DEBIT, TransactionType.CREDIT
        spent = sum(total for (kind, _), (total, _) in totals.items() if kind is debit)
        return LedgerStats(
            owner_id=owner_id,
            current_balance=await self.get_balance(owner_id),
            total_spent=spent,
            total_deposited=totals.get((credit, TransactionCategory.DEPOSIT), (0, 0))[0],
            total_refunded=totals.get((credit, TransactionCategory.REFUND), (0, 0))[0],
            connections_created=totals.get((debit, TransactionCategory.CONNECTION), (0, 0))[1],
            numbers_validated=totals.get((debit, TransactionCategory.VALIDATION), (0, 0))[1],
        )

    @staticmethod
    def _row_to_transaction(row: aiosqlite.Row) -> LedgerTransaction:
        return LedgerTransaction(
            id=row["id"],
            owner_id=row["owner_id"],
            amount=row["amount"],
            type=TransactionType(row["type"]),
            category=TransactionCategory(row["category"]),
            description=row["description"],
            related_id=row["related_id"],
            balance_before=row["balance_before"],
            balance_after=row["balance_after"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )

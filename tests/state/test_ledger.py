"""Tests for the credit ledger."""
from pathlib import Path

import pytest
import pytest_asyncio

from chatgate.errors import InsufficientBalanceError
from chatgate.state.database import DatabaseManager
from chatgate.state.ledger import SqliteLedger
from chatgate.state.models.ledger import TransactionCategory, TransactionType
from chatgate.state.repositories.ledger import LedgerRepository


@pytest_asyncio.fixture
async def db(tmp_path: Path) -> DatabaseManager:
    manager = DatabaseManager(tmp_path / "ledger.db")
    await manager.initialize()
    return manager


@pytest_asyncio.fixture
async def ledger(db: DatabaseManager) -> SqliteLedger:
    return SqliteLedger(db)


class TestBalances:
    """Deposits, debits and refunds."""

    @pytest.mark.asyncio
    async def test_unknown_owner_has_zero(self, ledger):
        assert await ledger.balance("nobody") == 0

    @pytest.mark.asyncio
    async def test_deposit_then_debit(self, ledger):
        txn = await ledger.deposit("U1", 50)
        assert txn.type is TransactionType.CREDIT
        assert txn.category is TransactionCategory.DEPOSIT
        assert txn.balance_before == 0 and txn.balance_after == 50
        assert txn.id is not None

        assert await ledger.debit("U1", 20, "connection", "Session s1", "s1") == 30
        assert await ledger.balance("U1") == 30

    @pytest.mark.asyncio
    async def test_overdraw_is_refused_without_change(self, ledger):
        await ledger.deposit("U1", 5)

        with pytest.raises(InsufficientBalanceError) as exc_info:
            await ledger.debit("U1", 10, TransactionCategory.VALIDATION, "Validation", None)

        assert exc_info.value.required == 10
        assert exc_info.value.available == 5
        assert exc_info.value.status_code == 402
        assert await ledger.balance("U1") == 5
        assert len(await ledger.transactions("U1")) == 1

    @pytest.mark.asyncio
    async def test_debit_from_empty_account(self, ledger):
        with pytest.raises(InsufficientBalanceError):
            await ledger.debit("U1", 1, "connection", "Session", "s1")

    @pytest.mark.asyncio
    async def test_refund_restores(self, ledger):
        await ledger.deposit("U1", 10)
        await ledger.debit("U1", 10, "connection", "Session s1", "s1")
        assert await ledger.refund("U1", 10, "Refund", "s1") == 10

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [0, -5, 1.5, True])
    async def test_amount_must_be_positive_int(self, ledger, amount):
        with pytest.raises(ValueError):
            await ledger.deposit("U1", amount)

    @pytest.mark.asyncio
    async def test_deposit_category_cannot_be_debited(self, ledger):
        await ledger.deposit("U1", 10)
        with pytest.raises(ValueError):
            await ledger.debit("U1", 1, "deposit", "nope")

    @pytest.mark.asyncio
    async def test_owners_are_isolated(self, ledger):
        await ledger.deposit("U1", 10)
        await ledger.deposit("U2", 3)
        assert await ledger.balance("U1") == 10
        assert await ledger.balance("U2") == 3


class TestTransactions:
    """Transaction history."""

    @pytest.mark.asyncio
    async def test_newest_first_with_filter_and_paging(self, ledger):
        await ledger.deposit("U1", 100, "Initial")
        await ledger.debit("U1", 10, "connection", "Session a", "a")
        await ledger.debit("U1", 5, "validation", "Check", None)
        await ledger.refund("U1", 10, "Refund a", "a")

        history = await ledger.transactions("U1")
        assert [t.amount for t in history] == [10, -5, -10, 100]
        assert history[0].category is TransactionCategory.REFUND

        debits = await ledger.transactions("U1", txn_type=TransactionType.DEBIT)
        assert [t.description for t in debits] == ["Check", "Session a"]

        page = await ledger.transactions("U1", limit=2, offset=1)
        assert [t.amount for t in page] == [-5, -10]

    @pytest.mark.asyncio
    async def test_to_dict(self, ledger):
        txn = await ledger.deposit("U1", 7)
        data = txn.to_dict()
        assert data["amount"] == 7
        assert data["balanceAfter"] == 7
        assert data["category"] == "deposit"

    @pytest.mark.asyncio
    async def test_repository_rejects_zero(self, db):
        async with db.connection() as conn:
            with pytest.raises(ValueError):
                await LedgerRepository(conn).apply("U1", 0, TransactionCategory.DEPOSIT, "zero")


class TestStats:
    """Lifetime usage totals."""

    @pytest.mark.asyncio
    async def test_unknown_owner_is_all_zero(self, ledger):
        stats = await ledger.stats("nobody")
        assert stats.to_dict() == {
            "currentBalance": 0,
            "totalSpent": 0,
            "totalDeposited": 0,
            "totalRefunded": 0,
            "connectionsCreated": 0,
            "numbersValidated": 0,
        }

    @pytest.mark.asyncio
    async def test_totals_by_type_and_category(self, ledger):
        await ledger.deposit("U1", 20)
        await ledger.deposit("U1", 5)
        await ledger.debit("U1", 5, "connection", "s1", "s1")
        await ledger.debit("U1", 5, "connection", "s2", "s2")
        await ledger.debit("U1", 2, "validation", "n1")
        await ledger.debit("U1", 2, "validation", "n2")
        await ledger.refund("U1", 2, "n2 failed")
        await ledger.deposit("U2", 100)

        stats = await ledger.stats("U1")

        assert stats.current_balance == 13
        assert stats.total_spent == 14
        assert stats.total_deposited == 25
        assert stats.total_refunded == 2
        assert stats.connections_created == 2
        assert stats.numbers_validated == 2


class TestDatabaseManager:
    @pytest.mark.asyncio
    async def test_initialize_is_idempotent(self, db):
        await db.initialize()
        assert db.is_initialized
        async with db.connection() as conn:
            cursor = await conn.execute("SELECT version FROM schema_versions ORDER BY version")
            versions = [row["version"] for row in await cursor.fetchall()]
        assert "1.1.0" in versions
        assert len(versions) == len(set(versions))

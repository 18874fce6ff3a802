"""Tests for schema migration from 1.0.0 to 1.1.0."""
from pathlib import Path

import aiosqlite
import pytest

from chatgate.state.database import _SCHEMA, DatabaseManager
from chatgate.state.ledger import SqliteLedger


class TestMigration:
    """Tests for the 1.0.0 -> 1.1.0 message log migration."""

    @pytest.mark.asyncio
    async def test_fresh_db_has_message_log(self, tmp_path: Path) -> None:
        manager = DatabaseManager(tmp_path / "fresh.db")
        await manager.initialize()
        async with manager.connection() as conn:
            cursor = await conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
            tables = {row[0] for row in await cursor.fetchall()}
        assert {"balances", "ledger_transactions", "inbound_messages"} <= tables

    @pytest.mark.asyncio
    async def test_upgrade_keeps_balances(self, tmp_path: Path) -> None:
        """A 1.0.0 database gains the message log and keeps its ledger."""
        db_path = tmp_path / "old.db"
        conn = await aiosqlite.connect(db_path)
        await conn.executescript(_SCHEMA)
        await conn.execute(
            "INSERT INTO balances (owner_id, balance, updated_at) VALUES ('U1', 42, datetime('now'))"
        )
        await conn.commit()
        await conn.close()

        manager = DatabaseManager(db_path)
        await manager.initialize()

        assert await SqliteLedger(manager).balance("U1") == 42
        async with manager.connection() as conn:
            cursor = await conn.execute("SELECT version FROM schema_versions ORDER BY version")
            versions = [row[0] for row in await cursor.fetchall()]
            cursor = await conn.execute("SELECT COUNT(*) FROM inbound_messages")
            (count,) = await cursor.fetchone()
        assert versions == ["1.0.0", "1.1.0"]
        assert count == 0

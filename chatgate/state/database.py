"""Database connection and lifecycle management."""
import aiosqlite
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator


class DatabaseError(Exception):
    pass


class DatabaseManager:
    """Manages SQLite connections and schema initialization for the gateway."""

    def __init__(self, db_path: Path) -> None:
        self._db_path = Path(db_path)
        self._initialized = False

    @property
    def db_path(self) -> Path:
        return self._db_path

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """Create tables and indexes, then run migrations."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            async with self.connection() as conn:
                await conn.executescript(_SCHEMA)
                await conn.commit()
                await _migrate_to_1_1_0(conn)
        except aiosqlite.Error as exc:
            raise DatabaseError(f"Failed to initialize {self._db_path}: {exc}") from exc
        self._initialized = True

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[aiosqlite.Connection]:
        """Yield an async database connection."""
        conn = await aiosqlite.connect(self._db_path)
        conn.row_factory = aiosqlite.Row
        try:
            await conn.execute("PRAGMA foreign_keys = ON")
            yield conn
        finally:
            await conn.close()

    async def close(self) -> None:
        self._initialized = False


async def _migrate_to_1_1_0(conn: aiosqlite.Connection) -> None:
    """Add the inbound message log.

    Idempotent: checks schema_versions before running.
    """
    cursor = await conn.execute(
        "SELECT 1 FROM schema_versions WHERE version = '1.1.0'"
    )
    if await cursor.fetchone() is not None:
        return
    await conn.executescript(_INBOUND_DDL)
    await conn.execute(
        "INSERT OR IGNORE INTO schema_versions (version, applied_at) "
        "VALUES ('1.1.0', datetime('now'))"
    )
    await conn.commit()


_SCHEMA = """
CREATE TABLE IF NOT EXISTS schema_versions (version TEXT PRIMARY KEY, applied_at TEXT NOT NULL);
CREATE TABLE IF NOT EXISTS balances (owner_id TEXT PRIMARY KEY, balance INTEGER NOT NULL DEFAULT 0 CHECK(balance >= 0), updated_at TEXT NOT NULL);
CREATE TABLE IF NOT EXISTS ledger_transactions (
    id             INTEGER PRIMARY KEY AUTOINCREMENT,
    owner_id       TEXT NOT NULL,
    amount         INTEGER NOT NULL,
    type           TEXT NOT NULL,
    category       TEXT NOT NULL,
    description    TEXT NOT NULL,
    related_id     TEXT,
    balance_before INTEGER NOT NULL,
    balance_after  INTEGER NOT NULL,
    created_at     TEXT NOT NULL,
    CHECK(type IN ('credit', 'debit')),
    CHECK(category IN ('connection', 'validation', 'deposit', 'refund'))
);
CREATE INDEX IF NOT EXISTS idx_ledger_owner ON ledger_transactions(owner_id, created_at);
INSERT OR IGNORE INTO schema_versions (version, applied_at) VALUES ('1.0.0', datetime('now'));
"""

_INBOUND_DDL = """
CREATE TABLE IF NOT EXISTS inbound_messages (
    owner_id     TEXT NOT NULL,
    session_id   TEXT NOT NULL,
    message_id   TEXT NOT NULL,
    sender       TEXT NOT NULL,
    message_type TEXT NOT NULL,
    content      TEXT NOT NULL,
    is_from_me   INTEGER NOT NULL DEFAULT 0,
    group_id     TEXT,
    sent_at      INTEGER NOT NULL,
    payload      TEXT NOT NULL,
    received_at  TEXT NOT NULL,
    PRIMARY KEY (session_id, message_id)
);
CREATE INDEX IF NOT EXISTS idx_inbound_owner_session ON inbound_messages(owner_id, session_id, sent_at);
"""

"""Inbound message log repository."""
import aiosqlite
from typing import Optional

from chatgate.state.models.message import StoredMessage


class InboundMessageRepository:
    """Append-only log of messages seen by each session.

    A message is identified by ``(session_id, message_id)``; the network
    may deliver the same message more than once and repeats are ignored.
    """

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def insert(self, msg: StoredMessage) -> bool:
        """Store a message. Returns False if it was already logged."""
        cursor = await self._conn.execute(
            "INSERT OR IGNORE INTO inbound_messages (owner_id, session_id, "
            "message_id, sender, message_type, content, is_from_me, group_id, "
            "sent_at, payload, received_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                msg.owner_id, msg.session_id, msg.message_id, msg.sender,
                msg.message_type, msg.content, int(msg.is_from_me), msg.group_id,
                msg.sent_at, msg.payload, msg.received_at.isoformat(),
            ),
        )
        await self._conn.commit()
        return cursor.rowcount > 0

    async def count(self, owner_id: str, session_id: Optional[str] = None) -> int:
        if session_id:
            cursor = await self._conn.execute(
                "SELECT COUNT(*) FROM inbound_messages WHERE owner_id = ? AND session_id = ?",
                (owner_id, session_id),
            )
        else:
            cursor = await self._conn.execute(
                "SELECT COUNT(*) FROM inbound_messages WHERE owner_id = ?", (owner_id,),
            )
        row = await cursor.fetchone()
        return row[0]

    async def sessions(self) -> list[tuple[str, str]]:
        """Every (owner_id, session_id) pair with logged messages."""
        cursor = await self._conn.execute(
            "SELECT DISTINCT owner_id, session_id FROM inbound_messages ORDER BY owner_id, session_id"
        )
        rows = await cursor.fetchall()
        return [(r[0], r[1]) for r in rows]

    async def delete_for_session(self, owner_id: str, session_id: str) -> int:
        cursor = await self._conn.execute(
            "DELETE FROM inbound_messages WHERE owner_id = ? AND session_id = ?",
            (owner_id, session_id),
        )
        await self._conn.commit()
        return cursor.rowcount


"""Persists parsed inbound messages to the gateway database."""
import json
import logging
from datetime import datetime, timezone

from chatgate.messaging.parse import ParsedMessage
from chatgate.state.database import DatabaseManager
from chatgate.state.models.message import StoredMessage
from chatgate.state.repositories.messages import InboundMessageRepository

logger = logging.getLogger(__name__)


class SqliteEventSink:
    """Event sink that appends every parsed message to ``inbound_messages``."""

    def __init__(self, db_manager: DatabaseManager) -> None:
        self._db = db_manager

    async def append(self, owner_id: str, session_id: str, message: ParsedMessage) -> None:
        if not message.message_id:
            logger.debug("Skipping message without id on session %s", session_id)
            return
        stored = StoredMessage(
            owner_id=owner_id,
            session_id=session_id,
            message_id=message.message_id,
            sender=message.sender,
            message_type=message.type.value,
            content=message.content,
            is_from_me=message.is_from_me,
            group_id=message.group_id,
            sent_at=message.timestamp,
            payload=json.dumps(message.to_dict()),
            received_at=datetime.now(timezone.utc),
        )
        async with self._db.connection() as conn:
            inserted = await InboundMessageRepository(conn).insert(stored)
        if not inserted:
            logger.debug("Message %s already logged for session %s", message.message_id, session_id)

    async def forget(self, owner_id: str, session_id: str) -> int:
        async with self._db.connection() as conn:
            return await InboundMessageRepository(conn).delete_for_session(owner_id, session_id)

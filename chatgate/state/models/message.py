"""Inbound message log model."""
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional


@dataclass(frozen=True)
class StoredMessage:
    """A received or sent chat message as persisted by the event sink."""

    owner_id: str
    session_id: str
    message_id: str
    sender: str
    message_type: str
    content: str
    sent_at: int
    payload: str
    received_at: datetime
    is_from_me: bool = False
    group_id: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.message_id:
            raise ValueError("message_id cannot be empty")
        if not self.session_id:
            raise ValueError("session_id cannot be empty")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.message_id,
            "sessionId": self.session_id,
            "sender": self.sender,
            "type": self.message_type,
            "content": self.content,
            "isFromMe": self.is_from_me,
            "groupId": self.group_id,
            "timestamp": self.sent_at,
            "receivedAt": self.received_at.isoformat(),
        }

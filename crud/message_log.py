"""
MessageLogRepository for the legacy rolling message count
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from database_models import MessageLogEntry
from services.clock import to_storage


class MessageLogRepository:
    """
    Repository class for MessageLogEntry database operations.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def record(self, user_id: str, role: str = "user", created_at: Optional[datetime] = None) -> MessageLogEntry:
        """
        Append a chat message to the log.

        Args:
            user_id: Author of the message
            role: "user" or "assistant"
            created_at: Message time, defaults to now

        Returns:
            The stored entry
        """
        entry = MessageLogEntry(user_id=user_id, role=role)
        if created_at is not None:
            entry.created_at = to_storage(created_at)
        self.db.add(entry)
        await self.db.flush()
        return entry

    async def count_since(self, user_id: str, since: datetime, role: str = "user") -> int:
        """Number of messages with the given role created at or after since."""
        result = await self.db.execute(
            select(func.count(MessageLogEntry.id)).where(
                MessageLogEntry.user_id == user_id,
                MessageLogEntry.role == role,
                MessageLogEntry.created_at >= to_storage(since),
            )
        )
        return result.scalar_one()

    async def count_total(self, user_id: str, role: str = "user") -> int:
        """Number of messages with the given role ever logged for a user."""
        result = await self.db.execute(
            select(func.count(MessageLogEntry.id)).where(
                MessageLogEntry.user_id == user_id,
                MessageLogEntry.role == role,
            )
        )
        return result.scalar_one()

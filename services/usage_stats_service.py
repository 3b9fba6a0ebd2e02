"""
Usage Stats Service - legacy rolling 24h message count

Independent of the balance ledger: the count comes from the chat message
log and the limit is reported, never enforced here.
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from crud.message_log import MessageLogRepository
from services.clock import SystemClock, as_utc
from services.entitlements import EntitlementResolver

logger = logging.getLogger(__name__)

LEGACY_WINDOW = timedelta(hours=24)


class UsageStatsService:
    """Service class for legacy usage reporting"""

    def __init__(self, db: AsyncSession, resolver: Optional[EntitlementResolver] = None, clock=None):
        self.repo = MessageLogRepository(db)
        self.resolver = resolver or EntitlementResolver()
        self.clock = clock or SystemClock()

    async def get_usage_stats(
        self,
        user_id: str,
        classification: str,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """
        Messages sent in the last 24 hours against the legacy daily limit.

        Raises:
            UnknownClassification: classification is outside the closed set
        """
        entitlements = self.resolver.resolve(classification)
        now = as_utc(now) if now is not None else self.clock.now()

        last_24h = await self.repo.count_since(user_id, now - LEGACY_WINDOW)
        total = await self.repo.count_total(user_id)
        limit = entitlements.max_messages_per_day_legacy
        exceeded = last_24h > limit
        if exceeded:
            logger.info(f"User {user_id} is over the legacy daily limit: {last_24h}/{limit}")

        return {
            "user_id": user_id,
            "classification": classification,
            "messages_last_24h": last_24h,
            "total_messages": total,
            "max_messages_per_day": limit,
            "legacy_limit_exceeded": exceeded,
            "available_features": list(entitlements.available_features),
        }

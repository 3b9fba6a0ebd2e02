"""
Tests for the legacy rolling message count
"""
from datetime import datetime, timedelta, timezone

import pytest

from crud.message_log import MessageLogRepository
from services.clock import FrozenClock
from services.ledger_errors import UnknownClassification
from services.usage_stats_service import UsageStatsService

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_counts_user_messages_in_last_24h(test_db, resolver):
    repo = MessageLogRepository(test_db)
    await repo.record("u1", created_at=NOW - timedelta(hours=1))
    await repo.record("u1", created_at=NOW - timedelta(hours=23, minutes=59))
    await repo.record("u1", created_at=NOW - timedelta(hours=25))
    await repo.record("u1", role="assistant", created_at=NOW - timedelta(hours=1))
    await repo.record("u2", created_at=NOW - timedelta(hours=1))

    service = UsageStatsService(test_db, resolver=resolver, clock=FrozenClock(NOW))
    stats = await service.get_usage_stats("u1", "guest")

    assert stats["messages_last_24h"] == 2
    assert stats["total_messages"] == 3
    assert stats["max_messages_per_day"] == 20
    assert stats["legacy_limit_exceeded"] is False


@pytest.mark.asyncio
async def test_limit_exceeded_is_reported_only(test_db, resolver):
    repo = MessageLogRepository(test_db)
    for i in range(21):
        await repo.record("u1", created_at=NOW - timedelta(minutes=i))

    stats = await UsageStatsService(test_db, resolver=resolver).get_usage_stats("u1", "guest", now=NOW)

    assert stats["messages_last_24h"] == 21
    assert stats["legacy_limit_exceeded"] is True

    regular = await UsageStatsService(test_db, resolver=resolver).get_usage_stats("u1", "regular", now=NOW)
    assert regular["legacy_limit_exceeded"] is False


@pytest.mark.asyncio
async def test_unknown_classification(test_db, resolver):
    with pytest.raises(UnknownClassification):
        await UsageStatsService(test_db, resolver=resolver).get_usage_stats("u1", "robot")

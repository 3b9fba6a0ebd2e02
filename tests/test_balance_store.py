"""
Tests for BalanceRepository conditional writes and BalanceStore transactions
"""
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from services.ledger_errors import StorageError

START = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_create_if_absent_only_once(store):
    async with store.transaction() as repo:
        assert await repo.create_if_absent("u1", "guest", 2, START) is True
        assert await repo.create_if_absent("u1", "regular", 5, START) is False
        row = await repo.get_balance("u1")
        assert row.trial_remaining == 2
        assert row.trial_capacity == 2
        assert row.paid_remaining == 0
        assert row.classification == "guest"


@pytest.mark.asyncio
async def test_conditional_decrements_stop_at_zero(store):
    async with store.transaction() as repo:
        await repo.create_if_absent("u1", "guest", 1, START)
        assert await repo.consume_trial("u1", START) is True
        assert await repo.consume_trial("u1", START) is False
        assert await repo.consume_paid("u1", START) is False
        row = await repo.get_balance("u1")
        assert row.trial_remaining == 0
        assert row.paid_remaining == 0


@pytest.mark.asyncio
async def test_apply_reset_is_compare_and_swap(store):
    later = START + timedelta(hours=25)
    async with store.transaction() as repo:
        await repo.create_if_absent("u1", "guest", 2, START)
        await repo.consume_trial("u1", START)

        assert await repo.apply_reset("u1", START, "guest", 2, later) is True
        # Second attempt with the stale expectation changes nothing
        assert await repo.apply_reset("u1", START, "guest", 2, later + timedelta(hours=1)) is False

        row = await repo.get_balance("u1")
        assert row.trial_remaining == 2
        assert row.last_reset_at == later.replace(tzinfo=None)


@pytest.mark.asyncio
async def test_record_transaction_is_unique(store):
    async with store.transaction() as repo:
        assert await repo.record_transaction("u1", "tx-1", 0, 100, 20, START) is True
        assert await repo.record_transaction("u1", "tx-1", 0, 100, 20, START) is False
        assert await repo.record_transaction("u2", "tx-1", 1, 250, 50, START) is False
        tx = await repo.get_transaction("tx-1")
        assert tx.user_id == "u1"
        assert tx.status == "completed"


@pytest.mark.asyncio
async def test_refund_trial_capped_at_capacity(store):
    async with store.transaction() as repo:
        await repo.create_if_absent("u1", "guest", 2, START)
        assert await repo.refund_trial("u1", START) is False
        await repo.consume_trial("u1", START)
        assert await repo.refund_trial("u1", START) is True
        row = await repo.get_balance("u1")
        assert row.trial_remaining == 2


@pytest.mark.asyncio
async def test_initialise_trial_only_for_pending_rows(store):
    later = START + timedelta(hours=2)
    async with store.transaction() as repo:
        assert await repo.create_pending("u1", 5, START) is True
        assert await repo.create_if_absent("u1", "regular", 5, START) is False
        row = await repo.get_balance("u1")
        assert row.classification is None
        assert row.trial_remaining == 0

        assert await repo.initialise_trial("u1", "guest", 2, later) is True
        assert await repo.initialise_trial("u1", "regular", 5, later) is False

        row = await repo.get_balance("u1")
        assert row.classification == "guest"
        assert row.trial_remaining == 2
        assert row.trial_capacity == 2
        assert row.last_reset_at == later.replace(tzinfo=None)


@pytest.mark.asyncio
async def test_mark_refunded_claims_once(store):
    async with store.transaction() as repo:
        await repo.create_if_absent("u1", "guest", 2, START)
        await repo.record_consumption("c-1", "u1", True, START)

        assert await repo.mark_refunded("c-1", "u2", START) is False
        assert await repo.mark_refunded("c-1", "u1", START) is True
        assert await repo.mark_refunded("c-1", "u1", START) is False
        assert await repo.mark_refunded("c-2", "u1", START) is False

        record = await repo.get_consumption("c-1")
        assert record.used_trial is True


@pytest.mark.asyncio
async def test_list_due_for_reset(store):
    async with store.transaction() as repo:
        await repo.create_if_absent("old", "guest", 2, START)
        await repo.create_if_absent("new", "guest", 2, START + timedelta(hours=10))
        await repo.create_pending("paid-only", 5, START)

    async with store.reader() as repo:
        due = await repo.list_due_for_reset(START + timedelta(hours=1))
    assert due == ["old"]


@pytest.mark.asyncio
async def test_transaction_rolls_back_on_error(store):
    with pytest.raises(RuntimeError):
        async with store.transaction() as repo:
            await repo.create_if_absent("u1", "guest", 2, START)
            raise RuntimeError("abort")

    async with store.reader() as repo:
        assert await repo.get_balance("u1") is None


@pytest.mark.asyncio
async def test_check_constraint_maps_to_storage_error(store):
    from sqlalchemy import update
    from database_models import UserBalance

    async with store.transaction() as repo:
        await repo.create_if_absent("u1", "guest", 2, START)

    with pytest.raises(StorageError) as exc_info:
        async with store.transaction() as repo:
            await repo.db.execute(
                update(UserBalance).where(UserBalance.user_id == "u1").values(paid_remaining=-1)
            )
    assert isinstance(exc_info.value.__cause__, IntegrityError)

    async with store.reader() as repo:
        row = await repo.get_balance("u1")
        assert row.paid_remaining == 0


@pytest.mark.asyncio
async def test_driver_failure_maps_to_storage_error(store, test_engine):
    # Disposing drops the in-memory database; the next connection has no tables
    await test_engine.dispose()

    with pytest.raises(StorageError) as exc_info:
        async with store.transaction() as repo:
            await repo.get_balance("u1")
    assert isinstance(exc_info.value.__cause__, OperationalError)

"""
BalanceRepository for database operations on UserBalance, AppliedTransaction
and ConsumptionRecord
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from database_models import UserBalance, AppliedTransaction, ConsumptionRecord
from services.clock import to_storage


class BalanceRepository:
    """
    Repository class for balance database operations.

    Every write is a single conditional statement whose WHERE clause
    re-checks the precondition, so a statement either applies fully or
    reports rowcount 0. Callers own the surrounding transaction.
    """

    def __init__(self, db: AsyncSession):
        """
        Initialize the repository with a database session.

        Args:
            db: AsyncSession with an open transaction
        """
        self.db = db

    def _insert(self, model):
        """Dialect insert supporting ON CONFLICT DO NOTHING."""
        if self.db.bind.dialect.name == "postgresql":
            return postgresql.insert(model)
        return sqlite.insert(model)

    async def get_balance(self, user_id: str) -> Optional[UserBalance]:
        """
        Retrieve the balance row for a user.

        Always refreshes from the database so values changed by earlier
        UPDATE statements in the same session are visible.
        """
        result = await self.db.execute(
            select(UserBalance)
            .where(UserBalance.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def create_if_absent(
        self,
        user_id: str,
        classification: str,
        trial_capacity: int,
        now: datetime,
    ) -> bool:
        """
        Insert a fresh balance row unless one exists.

        Returns:
            True if this call created the row
        """
        stamp = to_storage(now)
        stmt = self._insert(UserBalance).values(
            user_id=user_id,
            trial_remaining=trial_capacity,
            paid_remaining=0,
            trial_capacity=trial_capacity,
            last_reset_at=stamp,
            classification=classification,
            total_purchased=0,
            created_at=stamp,
            updated_at=stamp,
        ).on_conflict_do_nothing(index_elements=["user_id"])
        result = await self.db.execute(stmt)
        return result.rowcount == 1

    async def create_pending(self, user_id: str, trial_capacity: int, now: datetime) -> bool:
        """
        Insert a row with no classification and no trial credits unless one exists.

        Used when a payment arrives before the first consume; initialise_trial
        grants the trial once the classification is known.
        """
        stamp = to_storage(now)
        stmt = self._insert(UserBalance).values(
            user_id=user_id,
            trial_remaining=0,
            paid_remaining=0,
            trial_capacity=trial_capacity,
            last_reset_at=stamp,
            classification=None,
            total_purchased=0,
            created_at=stamp,
            updated_at=stamp,
        ).on_conflict_do_nothing(index_elements=["user_id"])
        result = await self.db.execute(stmt)
        return result.rowcount == 1

    async def initialise_trial(
        self,
        user_id: str,
        classification: str,
        trial_capacity: int,
        now: datetime,
    ) -> bool:
        """Grant the first trial window to a pending row; no-op once classified."""
        stamp = to_storage(now)
        stmt = (
            update(UserBalance)
            .where(UserBalance.user_id == user_id, UserBalance.classification.is_(None))
            .values(
                trial_remaining=trial_capacity,
                trial_capacity=trial_capacity,
                classification=classification,
                last_reset_at=stamp,
                updated_at=stamp,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount == 1

    async def apply_reset(
        self,
        user_id: str,
        expected_last_reset_at: datetime,
        classification: str,
        trial_capacity: int,
        now: datetime,
    ) -> bool:
        """
        Refill the trial balance if last_reset_at is still the value the caller saw.

        Returns:
            True if the refill was applied by this statement
        """
        stamp = to_storage(now)
        stmt = (
            update(UserBalance)
            .where(
                UserBalance.user_id == user_id,
                UserBalance.last_reset_at == to_storage(expected_last_reset_at),
            )
            .values(
                trial_remaining=trial_capacity,
                trial_capacity=trial_capacity,
                classification=classification,
                last_reset_at=stamp,
                updated_at=stamp,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount == 1

    async def set_classification(self, user_id: str, classification: str) -> None:
        """Remember the latest classification for the maintenance reset pass."""
        await self.db.execute(
            update(UserBalance)
            .where(UserBalance.user_id == user_id, UserBalance.classification != classification)
            .values(classification=classification)
            .execution_options(synchronize_session=False)
        )

    async def consume_trial(self, user_id: str, now: datetime) -> bool:
        """Decrement trial_remaining if positive."""
        stmt = (
            update(UserBalance)
            .where(UserBalance.user_id == user_id, UserBalance.trial_remaining > 0)
            .values(trial_remaining=UserBalance.trial_remaining - 1, updated_at=to_storage(now))
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount == 1

    async def consume_paid(self, user_id: str, now: datetime) -> bool:
        """Decrement paid_remaining if positive."""
        stmt = (
            update(UserBalance)
            .where(UserBalance.user_id == user_id, UserBalance.paid_remaining > 0)
            .values(paid_remaining=UserBalance.paid_remaining - 1, updated_at=to_storage(now))
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount == 1

    async def refund_trial(self, user_id: str, now: datetime) -> bool:
        """Return one trial message without exceeding trial_capacity."""
        stmt = (
            update(UserBalance)
            .where(
                UserBalance.user_id == user_id,
                UserBalance.trial_remaining < UserBalance.trial_capacity,
            )
            .values(trial_remaining=UserBalance.trial_remaining + 1, updated_at=to_storage(now))
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount == 1

    async def refund_paid(self, user_id: str, now: datetime) -> bool:
        """Return one paid message. Only called for a consumption just marked refunded."""
        stmt = (
            update(UserBalance)
            .where(UserBalance.user_id == user_id)
            .values(paid_remaining=UserBalance.paid_remaining + 1, updated_at=to_storage(now))
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount == 1

    async def record_consumption(self, consumption_id: str, user_id: str, used_trial: bool, now: datetime) -> None:
        """Remember an allowed consume so it can be refunded once."""
        self.db.add(ConsumptionRecord(
            consumption_id=consumption_id,
            user_id=user_id,
            used_trial=used_trial,
            created_at=to_storage(now),
        ))
        await self.db.flush()

    async def get_consumption(self, consumption_id: str) -> Optional[ConsumptionRecord]:
        result = await self.db.execute(
            select(ConsumptionRecord).where(ConsumptionRecord.consumption_id == consumption_id)
        )
        return result.scalar_one_or_none()

    async def mark_refunded(self, consumption_id: str, user_id: str, now: datetime) -> bool:
        """
        Flag a consumption as refunded if it belongs to user_id and was not refunded yet.

        Returns:
            True if this statement claimed the refund
        """
        stmt = (
            update(ConsumptionRecord)
            .where(
                ConsumptionRecord.consumption_id == consumption_id,
                ConsumptionRecord.user_id == user_id,
                ConsumptionRecord.refunded_at.is_(None),
            )
            .values(refunded_at=to_storage(now))
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount == 1

    async def record_transaction(
        self,
        user_id: str,
        transaction_id: str,
        package_index: int,
        star_amount: int,
        messages_added: int,
        now: datetime,
    ) -> bool:
        """
        Insert the idempotency record for a payment.

        Returns:
            True if inserted, False if the transaction id was already recorded
        """
        stmt = self._insert(AppliedTransaction).values(
            user_id=user_id,
            transaction_id=transaction_id,
            package_index=package_index,
            star_amount=star_amount,
            messages_added=messages_added,
            status="completed",
            created_at=to_storage(now),
        ).on_conflict_do_nothing(index_elements=["transaction_id"])
        result = await self.db.execute(stmt)
        return result.rowcount == 1

    async def add_paid(self, user_id: str, amount: int, now: datetime) -> bool:
        """Increment paid_remaining and lifetime purchase counters."""
        stamp = to_storage(now)
        stmt = (
            update(UserBalance)
            .where(UserBalance.user_id == user_id)
            .values(
                paid_remaining=UserBalance.paid_remaining + amount,
                total_purchased=UserBalance.total_purchased + amount,
                last_purchase_at=stamp,
                updated_at=stamp,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount == 1

    async def get_transaction(self, transaction_id: str) -> Optional[AppliedTransaction]:
        """Retrieve an applied transaction by its external id."""
        result = await self.db.execute(
            select(AppliedTransaction).where(AppliedTransaction.transaction_id == transaction_id)
        )
        return result.scalar_one_or_none()

    async def list_transactions(self, user_id: str, limit: int = 50) -> List[AppliedTransaction]:
        """Applied transactions for a user, newest first."""
        result = await self.db.execute(
            select(AppliedTransaction)
            .where(AppliedTransaction.user_id == user_id)
            .order_by(AppliedTransaction.created_at.desc(), AppliedTransaction.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def list_due_for_reset(self, cutoff: datetime, limit: int = 500, offset: int = 0) -> List[str]:
        """Classified user ids whose last refill is at or before cutoff, oldest first."""
        result = await self.db.execute(
            select(UserBalance.user_id)
            .where(UserBalance.last_reset_at <= to_storage(cutoff), UserBalance.classification.isnot(None))
            .order_by(UserBalance.last_reset_at, UserBalance.user_id)
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all())

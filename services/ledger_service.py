"""
Balance Ledger - trial and paid message credits per user
"""
import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, List, Optional

from config.settings import settings, CLASSIFICATION_REGULAR
from database_models import UserBalance
from models.ledger import BalanceSnapshot, ConsumeOutcome, CreditOutcome, PaymentRecord
from services.balance_store import BalanceStore
from services.clock import SystemClock, as_utc
from services.entitlements import EntitlementResolver
from services.ledger_errors import InvalidPackage, QuotaKind, StorageError, UnknownClassification
from services.package_catalog import PackageCatalog
from services.reset_policy import RESET_INTERVAL, is_reset_due, next_reset_at
from utils.balance_cache import BalanceCache
from utils.keyed_lock import KeyedLock

logger = logging.getLogger(__name__)


def _snapshot(row: UserBalance) -> BalanceSnapshot:
    return BalanceSnapshot(
        user_id=row.user_id,
        trial_remaining=row.trial_remaining,
        paid_remaining=row.paid_remaining,
        trial_capacity=row.trial_capacity,
        last_reset_at=as_utc(row.last_reset_at),
        classification=row.classification,
        total_purchased=row.total_purchased,
        last_purchase_at=as_utc(row.last_purchase_at) if row.last_purchase_at else None,
    )


class BalanceLedger:
    """
    Coordinates every read and write of user balances.

    Each mutating operation holds the user's lock and runs as one storage
    transaction built from conditional single-statement updates. A result is
    returned only after the transaction has committed; on any failure nothing
    is applied.
    """

    def __init__(
        self,
        store: BalanceStore,
        resolver: Optional[EntitlementResolver] = None,
        catalog: Optional[PackageCatalog] = None,
        clock=None,
        locks: Optional[KeyedLock] = None,
        cache: Optional[BalanceCache] = None,
        lock_timeout: Optional[float] = None,
    ):
        """
        Args:
            store: BalanceStore over the ledger database
            resolver: classification lookup, defaults to the configured limits
            catalog: purchasable packages, defaults to PAYMENT_PACKAGES
            clock: object with now(), defaults to SystemClock
            locks: per-user lock registry shared by every operation of this ledger
            cache: snapshot cache, defaults to an in-process cache
            lock_timeout: seconds to wait for a user's lock before StorageError
        """
        self.store = store
        self.resolver = resolver or EntitlementResolver()
        self.catalog = catalog if catalog is not None else PackageCatalog()
        self.clock = clock or SystemClock()
        self.locks = locks if locks is not None else KeyedLock()
        self.cache = cache or BalanceCache()
        self.lock_timeout = lock_timeout if lock_timeout is not None else settings.ledger_lock_timeout_seconds

    def _now(self, now: Optional[datetime]) -> datetime:
        return as_utc(now) if now is not None else self.clock.now()

    @asynccontextmanager
    async def _locked(self, user_id: str) -> AsyncIterator[None]:
        try:
            async with self.locks.hold(user_id, timeout=self.lock_timeout):
                yield
        except asyncio.TimeoutError as e:
            logger.error(f"Timed out waiting for balance lock of user {user_id}")
            raise StorageError(f"Timed out waiting for balance lock of user {user_id}") from e

    async def try_consume(
        self,
        user_id: str,
        classification: str,
        now: Optional[datetime] = None,
    ) -> ConsumeOutcome:
        """
        Spend one message credit, trial first, then paid.

        Applies a due daily refill before spending. Denial is a normal
        outcome: TRIAL_EXHAUSTED if the user never purchased credits,
        NO_CREDITS_REMAINING otherwise.
        An allowed consume carries a consumption_id for a later refund.

        Raises:
            UnknownClassification: before any storage access
            StorageError: storage or lock failure, nothing applied
        """
        entitlements = self.resolver.resolve(classification)
        now = self._now(now)

        async with self._locked(user_id):
            async with self.store.transaction() as repo:
                if await repo.create_if_absent(user_id, classification, entitlements.trial_capacity, now):
                    logger.info(f"Created balance for user {user_id} ({classification}, trial {entitlements.trial_capacity})")

                row = await repo.get_balance(user_id)
                if row.classification is None:
                    # Row opened by a payment: this is the user's first trial window
                    if await repo.initialise_trial(user_id, classification, entitlements.trial_capacity, now):
                        logger.info(f"Opened trial for paying user {user_id} ({classification}, trial {entitlements.trial_capacity})")
                elif is_reset_due(row.last_reset_at, now):
                    if await repo.apply_reset(
                        user_id, row.last_reset_at, classification, entitlements.trial_capacity, now
                    ):
                        logger.info(f"Daily trial refill for user {user_id}: {entitlements.trial_capacity} messages")
                else:
                    await repo.set_classification(user_id, classification)

                used_trial = await repo.consume_trial(user_id, now)
                allowed = used_trial or await repo.consume_paid(user_id, now)

                consumption_id = None
                if allowed:
                    consumption_id = uuid.uuid4().hex
                    await repo.record_consumption(consumption_id, user_id, used_trial, now)

                row = await repo.get_balance(user_id)
                denial = None
                if not allowed:
                    denial = QuotaKind.TRIAL_EXHAUSTED if row.total_purchased == 0 else QuotaKind.NO_CREDITS_REMAINING
                outcome = ConsumeOutcome(
                    allowed=allowed,
                    used_trial=used_trial,
                    trial_remaining=row.trial_remaining,
                    paid_remaining=row.paid_remaining,
                    denial=denial,
                    consumption_id=consumption_id,
                )
            self.cache.invalidate(user_id)

        if not allowed:
            logger.info(f"Consume denied for user {user_id}: {denial.value}")
        return outcome

    async def credit(
        self,
        user_id: str,
        transaction_id: str,
        package_index: int,
        now: Optional[datetime] = None,
        star_amount: Optional[int] = None,
    ) -> CreditOutcome:
        """
        Add a purchased package to the user's paid balance.

        The transaction id is recorded in the same storage transaction as
        the increment, so a repeated or concurrent delivery of the same id
        returns applied=False and changes nothing.

        Raises:
            InvalidPackage: unknown package, or star_amount differs from its price
            StorageError: storage or lock failure, nothing applied
        """
        package = self.catalog.get(package_index)
        if star_amount is not None and star_amount != package.price_units:
            raise InvalidPackage(
                f"Paid amount {star_amount} does not match package {package_index} price {package.price_units}",
                package_index=package_index,
                price=star_amount,
            )
        messages = package.total_messages
        now = self._now(now)

        async with self._locked(user_id):
            async with self.store.transaction() as repo:
                # No trial until the first consume resolves the classification
                placeholder = self.resolver.resolve(CLASSIFICATION_REGULAR)
                await repo.create_pending(user_id, placeholder.trial_capacity, now)

                applied = await repo.record_transaction(
                    user_id, transaction_id, package_index, package.price_units, messages, now
                )
                if applied:
                    await repo.add_paid(user_id, messages, now)

                row = await repo.get_balance(user_id)
                outcome = CreditOutcome(
                    applied=applied,
                    paid_remaining=row.paid_remaining,
                    messages_added=messages if applied else 0,
                )
            self.cache.invalidate(user_id)

        return outcome

    async def peek(self, user_id: str, now: Optional[datetime] = None) -> Optional[BalanceSnapshot]:
        """
        Current balance without side effects.

        Never applies a refill; reset_due reports whether the next consume
        would refill first. Returns None for users without a balance.
        """
        now = self._now(now)
        snapshot = self.cache.get(user_id)
        if snapshot is None:
            async with self._locked(user_id):
                async with self.store.reader() as repo:
                    row = await repo.get_balance(user_id)
                    if row is None:
                        return None
                    snapshot = _snapshot(row)
                self.cache.set(snapshot)

        return snapshot.model_copy(update={
            "reset_due": is_reset_due(snapshot.last_reset_at, now),
            "next_reset_at": next_reset_at(snapshot.last_reset_at),
        })

    async def refund(self, user_id: str, consumption_id: str, now: Optional[datetime] = None) -> bool:
        """
        Give back the message spent by one allowed consume whose answer was unusable.

        A consumption is refunded at most once. Unknown ids, ids of another
        user and already refunded ids change nothing. A trial message is not
        returned past trial_capacity, so a consume from before a refill gives
        nothing back.

        Returns:
            True if a message was returned
        """
        now = self._now(now)
        refunded = False
        async with self._locked(user_id):
            async with self.store.transaction() as repo:
                record = await repo.get_consumption(consumption_id)
                if record is None or not await repo.mark_refunded(consumption_id, user_id, now):
                    logger.info(f"Ignored refund of consumption {consumption_id} for user {user_id}")
                    return False
                used_trial = record.used_trial
                if used_trial:
                    refunded = await repo.refund_trial(user_id, now)
                else:
                    refunded = await repo.refund_paid(user_id, now)
            self.cache.invalidate(user_id)

        if refunded:
            logger.info(f"Refunded one {'trial' if used_trial else 'paid'} message to user {user_id}")
        return refunded

    async def reset_if_due(
        self,
        user_id: str,
        classification: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> bool:
        """
        Apply the daily refill for one user if it is due.

        Uses the stored classification when none is given.

        Returns:
            True if this call applied the refill
        """
        if classification is not None:
            self.resolver.resolve(classification)
        now = self._now(now)

        async with self._locked(user_id):
            async with self.store.transaction() as repo:
                row = await repo.get_balance(user_id)
                if row is None or not is_reset_due(row.last_reset_at, now):
                    return False
                effective = classification or row.classification
                if effective is None:
                    # Pending row: the first consume opens the trial
                    return False
                entitlements = self.resolver.resolve(effective)
                applied = await repo.apply_reset(
                    user_id, row.last_reset_at, effective, entitlements.trial_capacity, now
                )
            self.cache.invalidate(user_id)

        return applied

    async def run_reset_pass(self, now: Optional[datetime] = None, batch_size: int = 500) -> int:
        """
        Maintenance pass applying every due refill.

        Safe to run repeatedly or alongside live traffic: each refill is a
        compare-and-swap on last_reset_at. Rows with an unrecognised stored
        classification are logged and skipped.

        Returns:
            Number of refills applied
        """
        now = self._now(now)
        cutoff = now - RESET_INTERVAL
        total = 0
        # Skipped rows stay due and keep their place in the ordering
        skipped = 0
        while True:
            async with self.store.reader() as repo:
                due = await repo.list_due_for_reset(cutoff, limit=batch_size, offset=skipped)

            for user_id in due:
                try:
                    if await self.reset_if_due(user_id, now=now):
                        total += 1
                except UnknownClassification as e:
                    skipped += 1
                    logger.error(f"Skipping refill for user {user_id}: {e}")

            if len(due) < batch_size:
                break

        logger.info(f"Reset pass applied {total} refills")
        return total

    async def payment_history(self, user_id: str, limit: int = 50) -> List[PaymentRecord]:
        """Applied payments for a user, newest first."""
        async with self.store.reader() as repo:
            rows = await repo.list_transactions(user_id, limit=limit)
            return [
                PaymentRecord(
                    transaction_id=row.transaction_id,
                    package_index=row.package_index,
                    star_amount=row.star_amount,
                    messages_added=row.messages_added,
                    status=row.status,
                    created_at=as_utc(row.created_at),
                )
                for row in rows
            ]

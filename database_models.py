from sqlalchemy import Boolean, Column, Integer, String, DateTime, CheckConstraint, Index
from datetime import datetime, timezone
from database import Base


def _utcnow() -> datetime:
    """Naive UTC timestamp; all ledger columns store naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class UserBalance(Base):
    """
    Per-user message balance.
    Trial credits refill daily, paid credits never expire.
    """
    __tablename__ = "user_balances"
    __table_args__ = (
        CheckConstraint("trial_remaining >= 0", name="ck_user_balances_trial_non_negative"),
        CheckConstraint("paid_remaining >= 0", name="ck_user_balances_paid_non_negative"),
        CheckConstraint("trial_capacity > 0", name="ck_user_balances_trial_capacity_positive"),
    )

    user_id = Column(String(64), primary_key=True)
    trial_remaining = Column(Integer, nullable=False, default=0)
    paid_remaining = Column(Integer, nullable=False, default=0)
    trial_capacity = Column(Integer, nullable=False)
    last_reset_at = Column(DateTime, nullable=False, default=_utcnow)
    # NULL until the first consume: rows opened by a payment have no trial yet
    classification = Column(String(16), nullable=True)
    total_purchased = Column(Integer, nullable=False, default=0)
    last_purchase_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=_utcnow, nullable=False)
    updated_at = Column(DateTime, default=_utcnow, nullable=False)


class AppliedTransaction(Base):
    """
    Idempotency record for external payment transactions.
    The unique transaction_id makes a second credit a constraint conflict.
    """
    __tablename__ = "applied_transactions"
    __table_args__ = (
        Index("idx_applied_transactions_user_created", "user_id", "created_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False)
    transaction_id = Column(String(255), unique=True, nullable=False)
    package_index = Column(Integer, nullable=False)
    star_amount = Column(Integer, nullable=False)
    messages_added = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default="completed")
    created_at = Column(DateTime, default=_utcnow, nullable=False)


class MessageLogEntry(Base):
    """
    Chat message log used by the legacy rolling 24h counter.
    Written by the chat persistence path, read for reporting only.
    """
    __tablename__ = "message_log"
    __table_args__ = (
        Index("idx_message_log_user_created", "user_id", "created_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False)
    role = Column(String(16), nullable=False, default="user")
    created_at = Column(DateTime, default=_utcnow, nullable=False)


class ConsumptionRecord(Base):
    """
    One allowed consume, written in the same transaction as the decrement.
    A refund flips refunded_at exactly once, so a message is returned at most once.
    """
    __tablename__ = "ledger_consumptions"
    __table_args__ = (
        Index("idx_ledger_consumptions_user_created", "user_id", "created_at"),
    )

    consumption_id = Column(String(64), primary_key=True)
    user_id = Column(String(64), nullable=False)
    used_trial = Column(Boolean, nullable=False)
    created_at = Column(DateTime, default=_utcnow, nullable=False)
    refunded_at = Column(DateTime, nullable=True)

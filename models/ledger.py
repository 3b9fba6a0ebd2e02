"""
Ledger request and result models
"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from services.ledger_errors import QuotaKind


class BalanceSnapshot(BaseModel):
    """Read-only view of a user's balance"""
    user_id: str
    trial_remaining: int
    paid_remaining: int
    trial_capacity: int
    last_reset_at: datetime
    # None until the first consume of a user whose first contact was a payment
    classification: Optional[str] = None
    total_purchased: int = 0
    last_purchase_at: Optional[datetime] = None
    # Reporting only: computed at read time, never applied by a read
    reset_due: bool = False
    next_reset_at: Optional[datetime] = None

    @property
    def total_remaining(self) -> int:
        return self.trial_remaining + self.paid_remaining


class ConsumeOutcome(BaseModel):
    """Result of TryConsume"""
    allowed: bool
    used_trial: bool = False
    trial_remaining: int
    paid_remaining: int
    denial: Optional[QuotaKind] = None
    # Set when allowed; the only handle a refund accepts
    consumption_id: Optional[str] = None


class CreditOutcome(BaseModel):
    """Result of Credit"""
    applied: bool
    paid_remaining: int
    messages_added: int = 0


class PaymentRecord(BaseModel):
    """Applied payment transaction"""
    transaction_id: str
    package_index: int
    star_amount: int
    messages_added: int
    status: str
    created_at: datetime


class ConsumeRequest(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=64)
    classification: str


class RefundRequest(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=64)
    consumption_id: str = Field(..., min_length=1, max_length=64)


class PaymentConfirmation(BaseModel):
    """Payment confirmation delivered by the payment collaborator"""
    user_id: str = Field(..., min_length=1, max_length=64)
    transaction_id: str = Field(..., min_length=1, max_length=255)
    package_index: int
    # Invoice total in Telegram Stars, checked against the package price when present
    star_amount: Optional[int] = None


class PreCheckoutRequest(BaseModel):
    star_amount: int

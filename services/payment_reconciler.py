"""
Payment Reconciler - turns Telegram Stars payment confirmations into credits
"""
import logging
from datetime import datetime
from typing import Optional, Tuple

from models.ledger import CreditOutcome
from services.ledger_errors import InvalidPackage
from services.ledger_service import BalanceLedger
from services.package_catalog import PackageDefinition

logger = logging.getLogger(__name__)


class PaymentReconciler:
    """
    Applies each confirmed payment exactly once.

    Confirmations may arrive late, out of order or more than once; the
    ledger's idempotency record makes redelivery a logged no-op.
    """

    def __init__(self, ledger: BalanceLedger):
        self.ledger = ledger

    @property
    def catalog(self):
        return self.ledger.catalog

    async def on_payment_confirmed(
        self,
        user_id: str,
        transaction_id: str,
        package_index: int,
        now: Optional[datetime] = None,
        star_amount: Optional[int] = None,
    ) -> CreditOutcome:
        """
        Credit the package referenced by a payment confirmation.

        Raises:
            InvalidPackage: logged at ERROR for operators, then re-raised
            StorageError: nothing applied, the confirmation may be redelivered
        """
        try:
            outcome = await self.ledger.credit(
                user_id, transaction_id, package_index, now=now, star_amount=star_amount
            )
        except InvalidPackage as e:
            logger.error(
                f"Payment {transaction_id} for user {user_id} references an invalid package "
                f"(index={package_index}, amount={star_amount}): {e}"
            )
            raise

        if outcome.applied:
            logger.info(
                f"Payment applied: user={user_id} transaction={transaction_id} "
                f"package={package_index} +{outcome.messages_added} messages, paid balance {outcome.paid_remaining}"
            )
        else:
            logger.info(f"Duplicate payment ignored: user={user_id} transaction={transaction_id}")
        return outcome

    def validate_pre_checkout(self, star_amount: int) -> Tuple[int, PackageDefinition]:
        """
        Approve a pre-checkout query.

        The invoice total must equal the price of a catalog package.

        Returns:
            (package_index, package)

        Raises:
            InvalidPackage: no package has this price
        """
        match = self.catalog.find_by_price(star_amount)
        if match is None:
            logger.warning(f"Pre-checkout rejected: no package costs {star_amount} stars")
            raise InvalidPackage(f"No package costs {star_amount} stars", price=star_amount)
        return match

    async def on_successful_payment(
        self,
        user_id: str,
        transaction_id: str,
        star_amount: int,
        now: Optional[datetime] = None,
    ) -> CreditOutcome:
        """Credit a successful payment identified only by its amount."""
        match = self.catalog.find_by_price(star_amount)
        if match is None:
            logger.error(
                f"Payment {transaction_id} for user {user_id}: no package costs {star_amount} stars"
            )
            raise InvalidPackage(f"No package costs {star_amount} stars", price=star_amount)
        package_index, _ = match
        return await self.on_payment_confirmed(
            user_id, transaction_id, package_index, now=now, star_amount=star_amount
        )

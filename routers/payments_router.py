"""
Payments Router - Telegram Stars payment confirmations and package catalog
"""
import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query

from backend.utils.responses import success_response, ledger_error_response
from config.settings import settings
from models.ledger import PaymentConfirmation, PreCheckoutRequest
from services.ledger_errors import LedgerError
from services.ledger_provider import get_ledger, get_reconciler
from services.ledger_service import BalanceLedger
from services.package_catalog import CURRENCY
from services.payment_reconciler import PaymentReconciler

logger = logging.getLogger(__name__)

payments_router = APIRouter(prefix="/api/payments", tags=["payments"])


def verify_webhook_secret(
    x_payment_webhook_secret: Optional[str] = Header(None, alias="X-Payment-Webhook-Secret"),
):
    """Reject callers without the shared secret when PAYMENT_WEBHOOK_SECRET is set."""
    expected = settings.payment_webhook_secret
    if expected and not hmac.compare_digest(x_payment_webhook_secret or "", expected):
        logger.warning("Payment webhook called with a missing or wrong secret")
        raise HTTPException(status_code=401, detail="Invalid webhook secret")


@payments_router.post("/confirm", dependencies=[Depends(verify_webhook_secret)])
async def confirm_payment(
    confirmation: PaymentConfirmation,
    reconciler: PaymentReconciler = Depends(get_reconciler),
):
    """
    Credit a confirmed payment.

    Redelivery of the same transaction_id returns 200 with applied=false.
    A 503 means nothing was applied and the confirmation should be retried.
    """
    try:
        outcome = await reconciler.on_payment_confirmed(
            confirmation.user_id,
            confirmation.transaction_id,
            confirmation.package_index,
            star_amount=confirmation.star_amount,
        )
    except LedgerError as e:
        return ledger_error_response(e)

    message = "Payment applied" if outcome.applied else "Duplicate payment ignored"
    return success_response(outcome.model_dump(mode="json"), message=message)


@payments_router.post("/pre-checkout", dependencies=[Depends(verify_webhook_secret)])
async def pre_checkout(
    request: PreCheckoutRequest,
    reconciler: PaymentReconciler = Depends(get_reconciler),
):
    """Approve an invoice only if its total matches a package price."""
    try:
        package_index, package = reconciler.validate_pre_checkout(request.star_amount)
    except LedgerError as e:
        return ledger_error_response(e, data={"approved": False})

    return success_response({
        "approved": True,
        "package_index": package_index,
        "total_messages": package.total_messages,
        "currency": CURRENCY,
    })


@payments_router.get("/packages")
async def list_packages(ledger: BalanceLedger = Depends(get_ledger)):
    return success_response({"currency": CURRENCY, "packages": ledger.catalog.as_dicts()})


@payments_router.get("/history/{user_id}")
async def payment_history(
    user_id: str,
    limit: int = Query(50, ge=1, le=200),
    ledger: BalanceLedger = Depends(get_ledger),
):
    """Applied payments for a user, newest first."""
    try:
        records = await ledger.payment_history(user_id, limit=limit)
    except LedgerError as e:
        return ledger_error_response(e)
    return success_response({"payments": [record.model_dump(mode="json") for record in records]})

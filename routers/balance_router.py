"""
Balance Router - request gating and balance reporting
"""
import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException

from backend.utils.responses import (
    success_response,
    error_response,
    ledger_error_response,
    quota_exhausted_response,
)
from config.settings import settings
from models.ledger import ConsumeRequest, RefundRequest
from services.ledger_errors import ERROR_CODES, LedgerError, QuotaKind
from services.ledger_provider import get_ledger, get_request_gate
from services.ledger_service import BalanceLedger
from services.request_gate import RequestGate, STORAGE_UNAVAILABLE

logger = logging.getLogger(__name__)

balance_router = APIRouter(prefix="/api/balance", tags=["balance"])


@balance_router.post("/consume")
async def consume(request: ConsumeRequest, gate: RequestGate = Depends(get_request_gate)):
    """
    Spend one message credit before a chat request proceeds.

    200 when allowed, 402 with TrialExhausted / NoCreditsRemaining when
    denied, 503 when balance storage stayed unavailable after retries.
    """
    try:
        decision = await gate.admit(request.user_id, request.classification)
    except LedgerError as e:
        logger.warning(f"Consume rejected for user {request.user_id}: {e}")
        return ledger_error_response(e)

    if decision.allowed:
        return success_response(decision.outcome.model_dump(mode="json"), message="Message allowed")
    if decision.error == STORAGE_UNAVAILABLE:
        return error_response(STORAGE_UNAVAILABLE, status=503, message=ERROR_CODES[STORAGE_UNAVAILABLE])
    return quota_exhausted_response(QuotaKind(decision.error), data=decision.outcome.model_dump(mode="json"))


def require_service_secret(x_ledger_secret: Optional[str] = Header(None, alias="X-Ledger-Secret")):
    """Refunds are closed unless LEDGER_SERVICE_SECRET is configured and matched."""
    expected = settings.ledger_service_secret
    if not expected:
        raise HTTPException(status_code=403, detail="Refunds are disabled")
    if not hmac.compare_digest(x_ledger_secret or "", expected):
        logger.warning("Refund called with a missing or wrong secret")
        raise HTTPException(status_code=401, detail="Invalid ledger secret")


@balance_router.post("/refund", dependencies=[Depends(require_service_secret)])
async def refund(request: RefundRequest, ledger: BalanceLedger = Depends(get_ledger)):
    """
    Return the message spent by one consume whose answer was unusable.

    A consumption_id is honoured once; repeats and unknown ids return refunded=false.
    """
    try:
        refunded = await ledger.refund(request.user_id, request.consumption_id)
    except LedgerError as e:
        return ledger_error_response(e)
    return success_response({"refunded": refunded})


@balance_router.get("/{user_id}")
async def get_balance(user_id: str, ledger: BalanceLedger = Depends(get_ledger)):
    """Current balance; never applies the daily refill."""
    try:
        snapshot = await ledger.peek(user_id)
    except LedgerError as e:
        return ledger_error_response(e)

    if snapshot is None:
        return error_response("BALANCE_NOT_FOUND", status=404, message=f"No balance for user {user_id}")
    data = snapshot.model_dump(mode="json")
    data["total_remaining"] = snapshot.total_remaining
    return success_response(data)

"""
Admin Tools - maintenance endpoints for the balance ledger
"""
import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException

from backend.utils.responses import success_response, ledger_error_response
from config.settings import settings
from services.ledger_errors import LedgerError
from services.ledger_provider import get_ledger
from services.ledger_service import BalanceLedger

logger = logging.getLogger(__name__)

# Create router with /internal prefix
admin_router = APIRouter(prefix="/internal", tags=["admin"])


def require_admin_secret(x_admin_secret: Optional[str] = Header(None, alias="X-Admin-Secret")):
    """Maintenance endpoints are closed unless ADMIN_SECRET is configured and matched."""
    expected = settings.admin_secret
    if not expected:
        raise HTTPException(status_code=403, detail="Admin endpoints are disabled")
    if not hmac.compare_digest(x_admin_secret or "", expected):
        logger.warning("Admin endpoint called with a missing or wrong secret")
        raise HTTPException(status_code=401, detail="Invalid admin secret")


@admin_router.post("/reset-pass", dependencies=[Depends(require_admin_secret)])
async def reset_pass(ledger: BalanceLedger = Depends(get_ledger)):
    """
    Apply every due daily trial refill.
    Safe to call repeatedly; refills already applied are skipped.
    """
    try:
        applied = await ledger.run_reset_pass()
    except LedgerError as e:
        return ledger_error_response(e)

    return success_response({"applied": applied}, message=f"Applied {applied} trial refills")

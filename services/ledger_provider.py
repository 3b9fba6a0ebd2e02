"""
Process-wide ledger instance for the HTTP layer.

Routes depend on get_ledger / get_request_gate / get_reconciler so tests
can swap them through app.dependency_overrides.
"""
import logging
from typing import Optional

from fastapi import Depends

from database import AsyncSessionLocal
from services.balance_store import BalanceStore
from services.ledger_service import BalanceLedger
from services.payment_reconciler import PaymentReconciler
from services.request_gate import RequestGate
from utils.balance_cache import BalanceCache

logger = logging.getLogger(__name__)

_ledger: Optional[BalanceLedger] = None


def get_ledger() -> BalanceLedger:
    """Get or create the ledger (lazy initialization)."""
    global _ledger
    if _ledger is None:
        _ledger = BalanceLedger(BalanceStore(AsyncSessionLocal), cache=BalanceCache.from_settings())
        logger.info("Initialized balance ledger")
    return _ledger


def reset_ledger():
    """Drop the ledger instance (useful for testing or config reload)."""
    global _ledger
    _ledger = None


def get_request_gate(ledger: BalanceLedger = Depends(get_ledger)) -> RequestGate:
    return RequestGate(ledger)


def get_reconciler(ledger: BalanceLedger = Depends(get_ledger)) -> PaymentReconciler:
    return PaymentReconciler(ledger)

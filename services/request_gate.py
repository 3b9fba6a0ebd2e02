"""
Request Gate - allows or denies a chat request against the user's balance
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from config.settings import settings
from models.ledger import ConsumeOutcome
from services.ledger_errors import StorageError
from services.ledger_service import BalanceLedger

logger = logging.getLogger(__name__)

STORAGE_UNAVAILABLE = StorageError.code


@dataclass
class GateDecision:
    """What the request path should do with a chat request."""
    allowed: bool
    outcome: Optional[ConsumeOutcome] = None
    # QuotaKind value on quota denial, STORAGE_UNAVAILABLE after retries ran out
    error: Optional[str] = None
    attempts: int = 1


class RequestGate:
    """
    Consumes one credit before a request proceeds.

    StorageError is retried with exponential backoff up to max_attempts
    times; after that the request is denied. UnknownClassification is
    raised to the caller unchanged.
    """

    def __init__(
        self,
        ledger: BalanceLedger,
        max_attempts: Optional[int] = None,
        backoff_seconds: Optional[float] = None,
        sleep=asyncio.sleep,
    ):
        self.ledger = ledger
        self.max_attempts = max(1, max_attempts or settings.storage_retry_attempts)
        self.backoff_seconds = (
            backoff_seconds if backoff_seconds is not None else settings.storage_retry_backoff_seconds
        )
        self._sleep = sleep

    async def admit(self, user_id: str, classification: str) -> GateDecision:
        for attempt in range(self.max_attempts):
            try:
                outcome = await self.ledger.try_consume(user_id, classification)
            except StorageError as e:
                if attempt + 1 < self.max_attempts:
                    wait = self.backoff_seconds * (2 ** attempt)
                    logger.warning(
                        f"Balance storage unavailable for user {user_id} "
                        f"(attempt {attempt + 1}/{self.max_attempts}), retrying in {wait:.2f}s: {e}"
                    )
                    await self._sleep(wait)
                    continue
                logger.error(
                    f"Denying request for user {user_id}: balance storage unavailable "
                    f"after {self.max_attempts} attempts: {e}"
                )
                return GateDecision(allowed=False, error=STORAGE_UNAVAILABLE, attempts=attempt + 1)

            if outcome.allowed:
                return GateDecision(allowed=True, outcome=outcome, attempts=attempt + 1)
            return GateDecision(
                allowed=False, outcome=outcome, error=outcome.denial.value, attempts=attempt + 1
            )

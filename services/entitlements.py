"""
Entitlement Resolver - maps a user classification to its limits
"""
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from config.settings import settings, CLASSIFICATION_GUEST, CLASSIFICATION_REGULAR
from services.ledger_errors import UnknownClassification

# Chat models every classification may use
DEFAULT_FEATURES = ("chat-model", "chat-model-reasoning")


@dataclass(frozen=True)
class Entitlements:
    trial_capacity: int
    max_messages_per_day_legacy: int
    available_features: Tuple[str, ...] = DEFAULT_FEATURES


class EntitlementResolver:
    """
    Static lookup of limits per classification.
    Guest and regular differ only in numeric limits.
    """

    def __init__(self, table: Optional[Dict[str, Entitlements]] = None):
        if table is None:
            table = {
                # Users without an account
                CLASSIFICATION_GUEST: Entitlements(
                    trial_capacity=settings.guest_trial_messages,
                    max_messages_per_day_legacy=settings.guest_legacy_daily_limit,
                ),
                # Users with an account
                CLASSIFICATION_REGULAR: Entitlements(
                    trial_capacity=settings.regular_trial_messages,
                    max_messages_per_day_legacy=settings.regular_legacy_daily_limit,
                ),
            }
        self._table = dict(table)

    @property
    def classifications(self) -> Tuple[str, ...]:
        return tuple(self._table)

    def resolve(self, classification: str) -> Entitlements:
        """
        Look up the entitlements for a classification.

        Raises:
            UnknownClassification: classification is outside the closed set
        """
        try:
            return self._table[classification]
        except (KeyError, TypeError):
            raise UnknownClassification(classification) from None

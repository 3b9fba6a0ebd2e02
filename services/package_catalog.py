"""
Package Catalog - purchasable message packages paid with Telegram Stars

To add, remove or reprice a package edit PAYMENT_PACKAGES below.
Package indexes are part of the payment contract: append new packages
rather than reordering existing ones.
"""
from typing import Iterator, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict

from services.ledger_errors import InvalidPackage

# Telegram Stars currency code
CURRENCY = "XTR"
STARS_PER_MESSAGE = 5
MINIMUM_MESSAGES = 20


class PackageDefinition(BaseModel):
    """A purchasable bundle of paid messages"""
    model_config = ConfigDict(frozen=True)

    messages: int
    bonus_messages: int = 0
    price_units: int
    is_popular: bool = False
    label: str = ""
    emoji: str = ""
    description: str = ""

    @property
    def total_messages(self) -> int:
        return self.messages + self.bonus_messages


PAYMENT_PACKAGES: Tuple[PackageDefinition, ...] = (
    PackageDefinition(
        messages=20, bonus_messages=0, price_units=100, is_popular=False,
        label="Starter", emoji="💎", description="Perfect for trying out the service",
    ),
    PackageDefinition(
        messages=50, bonus_messages=0, price_units=250, is_popular=True,
        label="Popular", emoji="🔥", description="Most popular choice",
    ),
    PackageDefinition(
        messages=100, bonus_messages=5, price_units=500, is_popular=False,
        label="Value Pack", emoji="⭐", description="Best value with bonus messages",
    ),
    PackageDefinition(
        messages=200, bonus_messages=20, price_units=1000, is_popular=False,
        label="Premium", emoji="🚀", description="Maximum messages with big bonus",
    ),
)


class PackageCatalog:
    """Immutable ordered list of packages."""

    def __init__(self, packages: Sequence[PackageDefinition] = PAYMENT_PACKAGES):
        self._packages = tuple(packages)

    def __len__(self) -> int:
        return len(self._packages)

    def __iter__(self) -> Iterator[PackageDefinition]:
        return iter(self._packages)

    def get(self, index: int) -> PackageDefinition:
        """Package at index. Negative indexes are not accepted."""
        if not isinstance(index, int) or isinstance(index, bool) or not 0 <= index < len(self._packages):
            raise InvalidPackage(f"No package at index {index!r}", package_index=index)
        return self._packages[index]

    def find_by_price(self, price_units: int) -> Optional[Tuple[int, PackageDefinition]]:
        """Index and package with the given price, or None."""
        for index, package in enumerate(self._packages):
            if package.price_units == price_units:
                return index, package
        return None

    def as_dicts(self) -> list:
        """Catalog as plain dicts for UI collaborators."""
        return [
            {"index": index, "total_messages": package.total_messages, **package.model_dump()}
            for index, package in enumerate(self._packages)
        ]

"""
Unit tests for PackageCatalog
"""
import pytest

from services.ledger_errors import InvalidPackage
from services.package_catalog import (
    CURRENCY,
    PAYMENT_PACKAGES,
    PackageCatalog,
    PackageDefinition,
)


def test_default_catalog():
    catalog = PackageCatalog()

    assert len(catalog) == 4
    assert [p.total_messages for p in catalog] == [20, 50, 105, 220]
    assert [p.price_units for p in catalog] == [100, 250, 500, 1000]
    assert [p.is_popular for p in catalog] == [False, True, False, False]
    assert CURRENCY == "XTR"


def test_get_by_index():
    catalog = PackageCatalog()
    assert catalog.get(0) is PAYMENT_PACKAGES[0]
    assert catalog.get(3).bonus_messages == 20


@pytest.mark.parametrize("index", [-1, 4, 99, "0", 1.0, True, None])
def test_get_rejects_unknown_index(index):
    with pytest.raises(InvalidPackage) as exc_info:
        PackageCatalog().get(index)
    assert exc_info.value.package_index == index


def test_find_by_price():
    catalog = PackageCatalog()

    index, package = catalog.find_by_price(500)
    assert index == 2
    assert package.total_messages == 105
    assert catalog.find_by_price(123) is None


def test_packages_are_immutable():
    package = PAYMENT_PACKAGES[0]
    with pytest.raises(Exception):
        package.messages = 1000
    assert package.messages == 20


def test_custom_catalog_and_dicts():
    catalog = PackageCatalog([PackageDefinition(messages=10, bonus_messages=2, price_units=50, label="Tiny")])

    rows = catalog.as_dicts()

    assert rows == [{
        "index": 0,
        "total_messages": 12,
        "messages": 10,
        "bonus_messages": 2,
        "price_units": 50,
        "is_popular": False,
        "label": "Tiny",
        "emoji": "",
        "description": "",
    }]

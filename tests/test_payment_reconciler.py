"""
Tests for PaymentReconciler
"""
import logging

import pytest

from services.ledger_errors import InvalidPackage
from services.payment_reconciler import PaymentReconciler


@pytest.fixture
def reconciler(ledger):
    return PaymentReconciler(ledger)


@pytest.mark.asyncio
async def test_applied_then_duplicate_logged_distinctly(reconciler, caplog):
    caplog.set_level(logging.INFO, logger="services.payment_reconciler")

    first = await reconciler.on_payment_confirmed("u1", "tx-1", 0)
    second = await reconciler.on_payment_confirmed("u1", "tx-1", 0)

    assert first.applied is True
    assert second.applied is False
    assert second.paid_remaining == 20
    messages = [record.getMessage() for record in caplog.records]
    assert any(m.startswith("Payment applied") for m in messages)
    assert any(m.startswith("Duplicate payment ignored") for m in messages)


@pytest.mark.asyncio
async def test_out_of_order_confirmations(reconciler, ledger):
    await reconciler.on_payment_confirmed("u1", "tx-2", 1)
    await reconciler.on_payment_confirmed("u1", "tx-1", 0)
    await reconciler.on_payment_confirmed("u1", "tx-2", 1)

    snapshot = await ledger.peek("u1")
    assert snapshot.paid_remaining == 70


@pytest.mark.asyncio
async def test_invalid_package_logged_at_error_and_raised(reconciler, ledger, caplog):
    caplog.set_level(logging.INFO, logger="services.payment_reconciler")

    with pytest.raises(InvalidPackage):
        await reconciler.on_payment_confirmed("u1", "tx-1", 42)

    assert any(record.levelno == logging.ERROR for record in caplog.records)
    assert await ledger.peek("u1") is None


def test_validate_pre_checkout(reconciler):
    index, package = reconciler.validate_pre_checkout(250)
    assert index == 1
    assert package.total_messages == 50

    with pytest.raises(InvalidPackage) as exc_info:
        reconciler.validate_pre_checkout(251)
    assert exc_info.value.price == 251


@pytest.mark.asyncio
async def test_on_successful_payment_resolves_package_by_price(reconciler, ledger):
    outcome = await reconciler.on_successful_payment("u1", "charge-1", 1000)

    assert outcome.applied is True
    assert outcome.messages_added == 220
    history = await ledger.payment_history("u1")
    assert history[0].package_index == 3
    assert history[0].star_amount == 1000

    with pytest.raises(InvalidPackage):
        await reconciler.on_successful_payment("u1", "charge-2", 7)

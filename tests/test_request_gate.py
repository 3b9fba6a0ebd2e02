"""
Tests for RequestGate retry and fail-closed behaviour
"""
import pytest

from models.ledger import ConsumeOutcome
from services.ledger_errors import QuotaKind, StorageError, UnknownClassification
from services.request_gate import RequestGate, STORAGE_UNAVAILABLE


class FlakyLedger:
    """Raises StorageError for the first `failures` calls."""

    def __init__(self, failures, outcome=None):
        self.failures = failures
        self.calls = 0
        self.outcome = outcome or ConsumeOutcome(allowed=True, used_trial=True, trial_remaining=1, paid_remaining=0)

    async def try_consume(self, user_id, classification):
        self.calls += 1
        if self.calls <= self.failures:
            raise StorageError("database is locked")
        return self.outcome


class SleepRecorder:
    def __init__(self):
        self.waits = []

    async def __call__(self, seconds):
        self.waits.append(seconds)


@pytest.mark.asyncio
async def test_retries_then_allows():
    sleep = SleepRecorder()
    gate = RequestGate(FlakyLedger(failures=2), max_attempts=3, backoff_seconds=0.5, sleep=sleep)

    decision = await gate.admit("u1", "guest")

    assert decision.allowed is True
    assert decision.attempts == 3
    assert sleep.waits == [0.5, 1.0]


@pytest.mark.asyncio
async def test_fails_closed_after_attempts():
    sleep = SleepRecorder()
    ledger = FlakyLedger(failures=10)
    gate = RequestGate(ledger, max_attempts=3, backoff_seconds=0.1, sleep=sleep)

    decision = await gate.admit("u1", "guest")

    assert decision.allowed is False
    assert decision.error == STORAGE_UNAVAILABLE
    assert decision.outcome is None
    assert ledger.calls == 3
    assert len(sleep.waits) == 2


@pytest.mark.asyncio
async def test_quota_denial_is_not_retried():
    denied = ConsumeOutcome(
        allowed=False, trial_remaining=0, paid_remaining=0, denial=QuotaKind.TRIAL_EXHAUSTED
    )
    ledger = FlakyLedger(failures=0, outcome=denied)
    gate = RequestGate(ledger, max_attempts=3, sleep=SleepRecorder())

    decision = await gate.admit("u1", "guest")

    assert decision.allowed is False
    assert decision.error == "TrialExhausted"
    assert ledger.calls == 1


@pytest.mark.asyncio
async def test_unknown_classification_is_raised(ledger):
    gate = RequestGate(ledger, max_attempts=3, sleep=SleepRecorder())

    with pytest.raises(UnknownClassification):
        await gate.admit("u1", "superuser")


@pytest.mark.asyncio
async def test_gate_over_real_ledger(ledger):
    gate = RequestGate(ledger, max_attempts=2, backoff_seconds=0)

    results = [await gate.admit("u1", "guest") for _ in range(3)]

    assert [decision.allowed for decision in results] == [True, True, False]
    assert results[-1].error == QuotaKind.TRIAL_EXHAUSTED.value

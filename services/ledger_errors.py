"""
Ledger error taxonomy

Errors are raised only for misconfiguration and storage trouble.
Running out of credits and duplicate payment deliveries are normal
outcomes and never raise.
"""
from enum import Enum


class QuotaKind(str, Enum):
    """Why a consume request was denied."""
    TRIAL_EXHAUSTED = "TrialExhausted"
    NO_CREDITS_REMAINING = "NoCreditsRemaining"


ERROR_CODES = {
    "UNKNOWN_CLASSIFICATION": "User classification is not recognised.",
    "INVALID_PACKAGE": "Payment references a package that does not exist.",
    "STORAGE_UNAVAILABLE": "Balance storage is temporarily unavailable. Please try again.",
    QuotaKind.TRIAL_EXHAUSTED.value: "Daily trial messages are used up. Purchase messages or wait for the daily refill.",
    QuotaKind.NO_CREDITS_REMAINING.value: "No messages remaining. Please purchase more messages.",
}


class LedgerError(Exception):
    """Base class for ledger failures."""
    code = "LEDGER_ERROR"
    retriable = False


class UnknownClassification(LedgerError):
    """Classification outside the closed guest/regular set."""
    code = "UNKNOWN_CLASSIFICATION"

    def __init__(self, classification):
        self.classification = classification
        super().__init__(f"Unknown user classification: {classification!r}")


class InvalidPackage(LedgerError):
    """Payment referenced a package index or price that is not in the catalog."""
    code = "INVALID_PACKAGE"

    def __init__(self, message: str, package_index=None, price=None):
        self.package_index = package_index
        self.price = price
        super().__init__(message)


class StorageError(LedgerError):
    """Transient storage failure; the whole operation is safe to retry."""
    code = "STORAGE_UNAVAILABLE"
    retriable = True

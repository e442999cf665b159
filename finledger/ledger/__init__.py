"""
Ledger engine package.

`Ledger` is the entry point; the component classes are reachable as its
attributes (`ledger.transactions`, `ledger.recurrence`, ...).
"""

from finledger.ledger.context import Ledger
from finledger.ledger.errors import (
    ConfigurationError,
    LedgerError,
    LedgerValidationError,
    PairedWriteError,
)
from finledger.ledger.recurrence import next_occurrence, occurrences
from finledger.ledger.rules import RuleEngine

__all__ = [
    "Ledger",
    # Errors
    "ConfigurationError",
    "LedgerError",
    "LedgerValidationError",
    "PairedWriteError",
    # Pure helpers
    "RuleEngine",
    "next_occurrence",
    "occurrences",
]

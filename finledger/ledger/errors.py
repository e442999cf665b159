"""
Error taxonomy of the ledger engine.

Not-found and referential-guard failures are not exceptions: the
operation returns False or None and leaves state untouched.
"""


class LedgerError(Exception):
    """Base exception for ledger operations."""
    pass


class LedgerValidationError(LedgerError, ValueError):
    """Rejected input. Raised before anything is written."""
    pass


class ConfigurationError(LedgerError):
    """A bootstrap invariant is violated (e.g. no Available Funds category)."""
    pass


class PairedWriteError(LedgerError):
    """A paired write failed; the first leg has been discarded again."""
    pass

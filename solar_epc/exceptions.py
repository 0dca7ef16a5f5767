"""Ledger exceptions."""


class LedgerError(Exception):
    """Base class for errors raised by the procurement ledger."""


class LedgerValidationError(LedgerError, ValueError):
    """Supplied invoice figures disagree with the figures derived from its items."""

"""Shared ledger-store error types."""

from __future__ import annotations


class TimezoneAwareRequiredError(ValueError):
    """Raised when datetime inputs lack timezone information."""

    def __init__(self, context: str) -> None:
        """Attach a consistent message for the failing context."""
        super().__init__(f"{context} must be timezone aware")

    @classmethod
    def for_ledger_close(cls) -> TimezoneAwareRequiredError:
        """Return an error indicating ledger_closed_at was naive."""
        return cls("ledger_closed_at")

    @classmethod
    def for_column(cls) -> TimezoneAwareRequiredError:
        """Return an error indicating a stored datetime was naive."""
        return cls("stored datetime values")


class NegativeLedgerError(ValueError):
    """Raised when a batch reports a ledger sequence below zero."""

    def __init__(self, ledger: int) -> None:
        """Record the offending ledger for diagnostics."""
        self.ledger = ledger
        super().__init__(f"ledger sequence must be >= 0, got {ledger}")

"""Indexer errors."""

from __future__ import annotations


class EventDecodeError(ValueError):
    """Raised when a recognised loan event cannot be decoded."""

    def __init__(self, event_id: str, reason: str) -> None:
        """Record which event failed and why."""
        self.event_id = event_id
        self.reason = reason
        super().__init__(f"cannot decode event {event_id}: {reason}")

    @classmethod
    def missing_subject(cls, event_id: str) -> EventDecodeError:
        """Return an error for an event without a subject topic."""
        return cls(event_id, "missing subject address topic")

    @classmethod
    def invalid_subject(cls, event_id: str) -> EventDecodeError:
        """Return an error for a subject topic that is not an address."""
        return cls(event_id, "subject topic is not an address")

    @classmethod
    def invalid_timestamp(cls, event_id: str, value: str) -> EventDecodeError:
        """Return an error for an unparsable ledger close time."""
        return cls(event_id, f"invalid ledger close time {value!r}")


class IndexerConfigError(RuntimeError):
    """Raised when indexer configuration is missing or invalid."""

    @classmethod
    def missing_contract_id(cls) -> IndexerConfigError:
        """Return an error when no loan manager contract is configured."""
        return cls("TALLYMAN_LOAN_MANAGER_CONTRACT_ID is required to run the indexer")

    @classmethod
    def not_positive(cls, name: str, value: object) -> IndexerConfigError:
        """Return an error for a setting that must be positive."""
        return cls(f"{name} must be a positive number, got: {value!r}")

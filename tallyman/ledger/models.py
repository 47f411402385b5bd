"""Typed domain models for decoded loan events and indexer progress."""

from __future__ import annotations

import dataclasses
import enum
import typing as typ

if typ.TYPE_CHECKING:
    import datetime as dt


class LoanEventKind(enum.StrEnum):
    """Loan manager event kinds recognised by the indexer.

    Values match the contract's topic symbols exactly.
    """

    LOAN_REQUESTED = "LoanRequested"
    LOAN_APPROVED = "LoanApproved"
    LOAN_REPAID = "LoanRepaid"


@dataclasses.dataclass(frozen=True, slots=True)
class LoanEvent:
    """A contract event decoded into loan domain terms.

    ``subject`` is the borrower address carried in the second topic.
    ``raw_topics`` and ``raw_value`` keep the base64 XDR exactly as
    delivered so events can be re-decoded without querying the chain.
    """

    event_id: str
    kind: LoanEventKind
    subject: str
    ledger: int
    ledger_closed_at: dt.datetime
    tx_hash: str
    contract_id: str
    raw_topics: tuple[str, ...]
    raw_value: str
    loan_id: int | None = None
    amount: str | None = None


@dataclasses.dataclass(frozen=True, slots=True)
class IndexerProgress:
    """Resume position for the indexer."""

    last_ledger: int = 0
    last_cursor: str | None = None
    updated_at: dt.datetime | None = None

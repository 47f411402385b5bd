"""Ledger store primitives: loan event storage and indexer progress."""

from __future__ import annotations

from .errors import NegativeLedgerError, TimezoneAwareRequiredError
from .models import IndexerProgress, LoanEvent, LoanEventKind
from .services import (
    LedgerBatchWriter,
    ProgressReader,
    UnsupportedDialectError,
    insert_if_absent,
)
from .storage import (
    PROGRESS_ROW_ID,
    IndexerStateRecord,
    LoanEventRecord,
    init_ledger_storage,
)

__all__ = [
    "PROGRESS_ROW_ID",
    "IndexerProgress",
    "IndexerStateRecord",
    "LedgerBatchWriter",
    "LoanEvent",
    "LoanEventKind",
    "LoanEventRecord",
    "NegativeLedgerError",
    "ProgressReader",
    "TimezoneAwareRequiredError",
    "UnsupportedDialectError",
    "init_ledger_storage",
    "insert_if_absent",
]

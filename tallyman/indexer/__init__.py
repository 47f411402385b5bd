"""Loan event indexer: decoder, poll loop and read-side services."""

from __future__ import annotations

from .config import IndexerConfig
from .controller import EventIndexer, IndexerCycleResult
from .decoder import decode_loan_event
from .errors import EventDecodeError, IndexerConfigError
from .health import IndexerHealth, IndexerHealthConfig, IndexerHealthService
from .observability import (
    ErrorCategory,
    IndexerEventLogger,
    IndexerEventType,
    categorize_error,
)
from .queries import EventPageView, IndexerStatus, LoanEventQueries, StoredLoanEvent

__all__ = [
    "ErrorCategory",
    "EventDecodeError",
    "EventIndexer",
    "EventPageView",
    "IndexerConfig",
    "IndexerConfigError",
    "IndexerCycleResult",
    "IndexerEventLogger",
    "IndexerEventType",
    "IndexerHealth",
    "IndexerHealthConfig",
    "IndexerHealthService",
    "IndexerStatus",
    "LoanEventQueries",
    "StoredLoanEvent",
    "categorize_error",
    "decode_loan_event",
]

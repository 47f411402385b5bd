"""Observability primitives for the loan event indexer.

Cycle outcomes, skipped events and lifecycle transitions are emitted as
structured log lines of the form ``[event.type] key=value ...`` so log
aggregators can count failures by category without parsing prose.
"""

from __future__ import annotations

import enum
import typing as typ

import httpx
from sqlalchemy.exc import (
    IntegrityError,
    InterfaceError,
    OperationalError,
    SQLAlchemyError,
)

from tallyman.logging import get_logger, log_debug, log_error, log_info, log_warning
from tallyman.soroban.errors import SorobanResponseShapeError, SorobanRpcError

from .errors import IndexerConfigError

if typ.TYPE_CHECKING:
    import datetime as dt

    from .controller import IndexerCycleResult
    from .errors import EventDecodeError

logger = get_logger(__name__)

# HTTP status code threshold for server errors (5xx)
_HTTP_SERVER_ERROR_THRESHOLD = 500


class IndexerEventType(enum.StrEnum):
    """Structured log event types for indexer observability."""

    STARTED = "indexer.started"
    STOPPED = "indexer.stopped"
    CYCLE_COMPLETED = "indexer.cycle.completed"
    CYCLE_EMPTY = "indexer.cycle.empty"
    CYCLE_FAILED = "indexer.cycle.failed"
    RETRY_SCHEDULED = "indexer.cycle.retry_scheduled"
    EVENT_SKIPPED = "indexer.event.skipped"
    EVENT_REJECTED = "indexer.event.rejected"


class ErrorCategory(enum.StrEnum):
    """Categories for error classification in alerts."""

    TRANSIENT = "transient"
    CLIENT_ERROR = "client_error"
    SCHEMA_DRIFT = "schema_drift"
    CONFIGURATION = "configuration"
    DATABASE_CONNECTIVITY = "database_connectivity"
    DATA_INTEGRITY = "data_integrity"
    DATABASE_ERROR = "database_error"
    UNKNOWN = "unknown"


_EXCEPTION_CATEGORY_MAP: tuple[tuple[type[BaseException], ErrorCategory], ...] = (
    (SorobanResponseShapeError, ErrorCategory.SCHEMA_DRIFT),
    (IndexerConfigError, ErrorCategory.CONFIGURATION),
    (httpx.TransportError, ErrorCategory.TRANSIENT),
    (TimeoutError, ErrorCategory.TRANSIENT),
    (OperationalError, ErrorCategory.DATABASE_CONNECTIVITY),
    (InterfaceError, ErrorCategory.DATABASE_CONNECTIVITY),
    (IntegrityError, ErrorCategory.DATA_INTEGRITY),
    (SQLAlchemyError, ErrorCategory.DATABASE_ERROR),
)


def categorize_error(exc: BaseException) -> ErrorCategory:
    """Categorize an exception for alerting purposes.

    Returns:
        ErrorCategory indicating the type of failure for alert routing.

    """
    # Server-side and JSON-RPC failures are retried; 4xx means we sent junk.
    if isinstance(exc, SorobanRpcError):
        if exc.status_code is None or exc.status_code >= _HTTP_SERVER_ERROR_THRESHOLD:
            return ErrorCategory.TRANSIENT
        return ErrorCategory.CLIENT_ERROR

    for exc_type, category in _EXCEPTION_CATEGORY_MAP:
        if isinstance(exc, exc_type):
            return category

    return ErrorCategory.UNKNOWN


class IndexerEventLogger:
    """Emit structured indexer events via femtologging.

    Success is logged at INFO, skipped events at DEBUG, rejected events at
    WARNING and failed cycles at ERROR.
    """

    def log_started(self, contract_id: str, poll_interval_ms: int) -> None:
        """Log the stopped to running transition."""
        log_info(
            logger,
            "[%s] contract_id=%s poll_interval_ms=%d",
            IndexerEventType.STARTED,
            contract_id,
            poll_interval_ms,
        )

    def log_stopped(self, contract_id: str) -> None:
        """Log the running to stopped transition."""
        log_info(logger, "[%s] contract_id=%s", IndexerEventType.STOPPED, contract_id)

    def log_cycle_empty(self, start_ledger: int) -> None:
        """Log a cycle that found nothing past the stored position."""
        log_debug(
            logger,
            "[%s] start_ledger=%d",
            IndexerEventType.CYCLE_EMPTY,
            start_ledger,
        )

    def log_cycle_completed(
        self, result: IndexerCycleResult, duration: dt.timedelta
    ) -> None:
        """Log a persisted batch with its counts."""
        log_info(
            logger,
            "[%s] duration_seconds=%.3f fetched=%d decoded=%d inserted=%d "
            "rejected=%d last_ledger=%s",
            IndexerEventType.CYCLE_COMPLETED,
            duration.total_seconds(),
            result.fetched,
            result.decoded,
            result.inserted,
            result.rejected,
            result.last_ledger,
        )

    def log_cycle_failed(self, error: BaseException, duration: dt.timedelta) -> None:
        """Log a failed cycle with error categorization."""
        log_error(
            logger,
            "[%s] duration_seconds=%.3f error_type=%s error_category=%s "
            "error_message=%s",
            IndexerEventType.CYCLE_FAILED,
            duration.total_seconds(),
            type(error).__name__,
            categorize_error(error),
            str(error),
            exc_info=error,
        )

    def log_retry_scheduled(self, delay_ms: int) -> None:
        """Log that the range of a failed cycle will be requested again."""
        log_info(
            logger,
            "[%s] delay_ms=%d",
            IndexerEventType.RETRY_SCHEDULED,
            delay_ms,
        )

    def log_event_skipped(self, event_id: str, ledger: int) -> None:
        """Log an event that is not a recognised loan event."""
        log_debug(
            logger,
            "[%s] event_id=%s ledger=%d",
            IndexerEventType.EVENT_SKIPPED,
            event_id,
            ledger,
        )

    def log_event_rejected(self, error: EventDecodeError, ledger: int) -> None:
        """Log a recognised event that could not be decoded."""
        log_warning(
            logger,
            "[%s] event_id=%s ledger=%d reason=%s",
            IndexerEventType.EVENT_REJECTED,
            error.event_id,
            ledger,
            error.reason,
        )

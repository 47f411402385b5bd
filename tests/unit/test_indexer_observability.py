"""Unit tests for indexer observability."""

from __future__ import annotations

import dataclasses
import datetime as dt

import httpx
import pytest
from sqlalchemy.exc import (
    IntegrityError,
    InterfaceError,
    OperationalError,
    SQLAlchemyError,
)

from tallyman.indexer import (
    ErrorCategory,
    EventDecodeError,
    IndexerConfigError,
    IndexerCycleResult,
    IndexerEventLogger,
    IndexerEventType,
    categorize_error,
)
from tallyman.indexer import observability
from tallyman.soroban import SorobanResponseShapeError, SorobanRpcError


@dataclasses.dataclass(slots=True)
class _Record:
    level: str
    message: str
    exc_info: object | None


class _RecordingLogger:
    """Stand-in for a femtologging logger that keeps every record."""

    def __init__(self) -> None:
        self.records: list[_Record] = []

    def log(
        self,
        level: str,
        message: str,
        /,
        *,
        exc_info: object | None = None,
        stack_info: bool = False,
    ) -> str:
        del stack_info
        self.records.append(_Record(level=str(level), message=message, exc_info=exc_info))
        return message


@pytest.fixture
def recorder(monkeypatch: pytest.MonkeyPatch) -> _RecordingLogger:
    """Route observability log output into a recorder."""
    logger = _RecordingLogger()
    monkeypatch.setattr(observability, "logger", logger)
    return logger


class TestCategorizeError:
    """Tests for error categorization."""

    @pytest.mark.parametrize("status", [500, 502, 503])
    def test_rpc_5xx_is_transient(self, status: int) -> None:
        """Server-side RPC failures are classified as transient."""
        exc = SorobanRpcError.http_error(status)
        assert categorize_error(exc) == ErrorCategory.TRANSIENT

    def test_rpc_4xx_is_client_error(self) -> None:
        """Rejected requests are classified as client errors."""
        exc = SorobanRpcError.http_error(400)
        assert categorize_error(exc) == ErrorCategory.CLIENT_ERROR

    def test_json_rpc_error_is_transient(self) -> None:
        """JSON-RPC errors carry no HTTP status and are retried."""
        exc = SorobanRpcError.rpc_error(-32600, "bad range")
        assert categorize_error(exc) == ErrorCategory.TRANSIENT

    def test_shape_error_is_schema_drift(self) -> None:
        """Unexpected payloads indicate schema drift."""
        exc = SorobanResponseShapeError.invalid("missing result")
        assert categorize_error(exc) == ErrorCategory.SCHEMA_DRIFT

    def test_config_error_is_configuration(self) -> None:
        """Configuration errors are classified accordingly."""
        assert (
            categorize_error(IndexerConfigError.missing_contract_id())
            == ErrorCategory.CONFIGURATION
        )

    def test_transport_error_is_transient(self) -> None:
        """Connection failures to the RPC endpoint are transient."""
        exc = httpx.ConnectError("refused")
        assert categorize_error(exc) == ErrorCategory.TRANSIENT

    def test_timeout_is_transient(self) -> None:
        """Timeouts are transient."""
        assert categorize_error(TimeoutError()) == ErrorCategory.TRANSIENT

    def test_database_errors(self) -> None:
        """SQLAlchemy errors map to their database categories."""
        orig = Exception("test")
        assert (
            categorize_error(OperationalError("down", None, orig))
            == ErrorCategory.DATABASE_CONNECTIVITY
        )
        assert (
            categorize_error(InterfaceError("gone", None, orig))
            == ErrorCategory.DATABASE_CONNECTIVITY
        )
        assert (
            categorize_error(IntegrityError("dup", None, orig))
            == ErrorCategory.DATA_INTEGRITY
        )
        assert categorize_error(SQLAlchemyError("other")) == ErrorCategory.DATABASE_ERROR

    def test_unknown_exception_is_unknown(self) -> None:
        """Anything else is unknown."""
        assert categorize_error(ValueError("boom")) == ErrorCategory.UNKNOWN


class TestIndexerEventLogger:
    """Tests for structured indexer log lines."""

    def test_lifecycle_events(self, recorder: _RecordingLogger) -> None:
        """Start and stop are logged with the contract id."""
        event_logger = IndexerEventLogger()

        event_logger.log_started("CLOANS", 30_000)
        event_logger.log_stopped("CLOANS")

        started, stopped = recorder.records
        assert started.level == "INFO"
        assert started.message == (
            f"[{IndexerEventType.STARTED}] contract_id=CLOANS poll_interval_ms=30000"
        )
        assert stopped.message == f"[{IndexerEventType.STOPPED}] contract_id=CLOANS"

    def test_cycle_completed(self, recorder: _RecordingLogger) -> None:
        """Completed cycles report their counts and position."""
        result = IndexerCycleResult(
            fetched=3, decoded=2, skipped=1, inserted=2, last_ledger=102, cursor="c"
        )

        IndexerEventLogger().log_cycle_completed(result, dt.timedelta(seconds=1.25))

        [record] = recorder.records
        assert record.level == "INFO"
        assert record.message.startswith(f"[{IndexerEventType.CYCLE_COMPLETED}]")
        assert "duration_seconds=1.250" in record.message
        assert "fetched=3 decoded=2 inserted=2 rejected=0" in record.message
        assert "last_ledger=102" in record.message

    def test_cycle_failed_includes_category(self, recorder: _RecordingLogger) -> None:
        """Failures are logged at ERROR with the category and traceback."""
        error = SorobanRpcError.http_error(503)

        IndexerEventLogger().log_cycle_failed(error, dt.timedelta(seconds=0.5))

        [record] = recorder.records
        assert record.level == "ERROR"
        assert "error_type=SorobanRpcError" in record.message
        assert "error_category=transient" in record.message
        assert record.exc_info is error

    def test_event_level_logs(self, recorder: _RecordingLogger) -> None:
        """Skips log at DEBUG and rejections at WARNING."""
        event_logger = IndexerEventLogger()

        event_logger.log_event_skipped("evt-1", 10)
        event_logger.log_event_rejected(EventDecodeError.missing_subject("evt-2"), 11)
        event_logger.log_cycle_empty(12)
        event_logger.log_retry_scheduled(30_000)

        levels = [record.level for record in recorder.records]
        assert levels == ["DEBUG", "WARNING", "DEBUG", "INFO"]
        assert recorder.records[1].message == (
            f"[{IndexerEventType.EVENT_REJECTED}] event_id=evt-2 ledger=11 "
            "reason=missing subject address topic"
        )
        assert recorder.records[3].message == (
            f"[{IndexerEventType.RETRY_SCHEDULED}] delay_ms=30000"
        )

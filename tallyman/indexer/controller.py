"""Poll loop that keeps the loan event store in step with the chain.

Each cycle reads the stored position, fetches one page of contract events
after it, decodes them and writes the decoded events together with the new
position in a single transaction. Cycles run one at a time on a background
task and are separated by a fixed delay. A failed cycle leaves the position
untouched, so the next cycle asks for the same range again; duplicate events
are absorbed by the store.

Only one indexer may write to a given store. Two instances would race on the
progress row.
"""

from __future__ import annotations

import asyncio
import dataclasses
import typing as typ

from tallyman.common.time import utcnow
from tallyman.ledger import LedgerBatchWriter, ProgressReader

from .decoder import decode_loan_event
from .errors import EventDecodeError, IndexerConfigError
from .observability import IndexerEventLogger

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from tallyman.ledger.models import LoanEvent
    from tallyman.soroban.client import EventSource
    from tallyman.soroban.models import RawContractEvent

    from .config import IndexerConfig

    SessionFactory: typ.TypeAlias = async_sessionmaker[AsyncSession]


@dataclasses.dataclass(frozen=True, slots=True)
class IndexerCycleResult:
    """Summary of a single poll cycle.

    ``last_ledger`` and ``cursor`` are ``None`` for an empty cycle, which
    writes nothing.
    """

    fetched: int = 0
    decoded: int = 0
    skipped: int = 0
    rejected: int = 0
    inserted: int = 0
    last_ledger: int | None = None
    cursor: str | None = None


@dataclasses.dataclass(slots=True)
class _DecodedBatch:
    events: list[LoanEvent] = dataclasses.field(default_factory=list)
    skipped: int = 0
    rejected: int = 0


class EventIndexer:
    """Poll a Soroban event source and persist loan events.

    The indexer is either stopped or running. :meth:`start` runs the first
    cycle straight away and keeps polling until :meth:`stop`; a cycle that is
    already executing when :meth:`stop` is called runs to completion.
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        source: EventSource,
        config: IndexerConfig,
        *,
        event_logger: IndexerEventLogger | None = None,
        writer: LedgerBatchWriter | None = None,
    ) -> None:
        """Bind the indexer to its store, event source and settings.

        Raises
        ------
        IndexerConfigError
            If ``config`` names no contract to index.

        """
        if not config.contract_id:
            raise IndexerConfigError.missing_contract_id()
        self._contract_id = config.contract_id
        self._config = config
        self._source = source
        self._writer = writer or LedgerBatchWriter(session_factory)
        self._progress = ProgressReader(session_factory)
        self._event_logger = event_logger or IndexerEventLogger()
        self._stop_requested = asyncio.Event()
        self._cycle_lock = asyncio.Lock()
        self._task: asyncio.Task[None] | None = None
        self._running = False

    @property
    def running(self) -> bool:
        """Return True between :meth:`start` and :meth:`stop`."""
        return self._running

    async def start(self) -> None:
        """Start polling; does nothing when already running."""
        if self._running:
            return
        self._running = True
        stop_requested = asyncio.Event()
        self._stop_requested = stop_requested
        previous = self._task
        if previous is not None and not previous.done():
            # A stopped loop may still be finishing its last cycle.
            await previous
        self._event_logger.log_started(self._contract_id, self._config.poll_interval_ms)
        self._task = asyncio.create_task(
            self._run(stop_requested), name="tallyman-indexer"
        )

    def stop(self) -> None:
        """Stop scheduling cycles without interrupting one in flight."""
        if not self._running:
            return
        self._running = False
        self._stop_requested.set()
        self._event_logger.log_stopped(self._contract_id)

    async def join(self) -> None:
        """Wait for the background loop to finish after :meth:`stop`."""
        if self._task is not None:
            await self._task

    async def run_cycle(self) -> IndexerCycleResult:
        """Run one fetch, decode and persist cycle.

        Cycles never overlap: a call made while another cycle is in flight,
        including one started by the background loop, waits for it to finish
        and then reads the position it stored.

        Raises
        ------
        Exception
            Whatever the event source or the store raised. The stored position
            is unchanged in that case.

        """
        async with self._cycle_lock:
            started_at = utcnow()
            try:
                result = await self._run_cycle_inner()
            except Exception as exc:
                self._event_logger.log_cycle_failed(exc, utcnow() - started_at)
                raise
            if result.fetched:
                self._event_logger.log_cycle_completed(result, utcnow() - started_at)
            return result

    async def _run(self, stop_requested: asyncio.Event) -> None:
        while not stop_requested.is_set():
            try:
                await self.run_cycle()
            except Exception:  # noqa: BLE001 - run_cycle logged the failure
                self._event_logger.log_retry_scheduled(self._config.poll_interval_ms)
            try:
                await asyncio.wait_for(
                    stop_requested.wait(), timeout=self._config.poll_interval_s
                )
            except TimeoutError:
                continue

    async def _run_cycle_inner(self) -> IndexerCycleResult:
        progress = await self._progress.get_progress()
        start_ledger = self._start_ledger_for(progress.last_ledger)
        page = await self._source.get_events(
            contract_id=self._contract_id,
            start_ledger=start_ledger,
            limit=self._config.batch_size,
        )
        if not page.events:
            self._event_logger.log_cycle_empty(start_ledger)
            return IndexerCycleResult()

        batch = self._decode_batch(page.events)
        last_ledger = max(raw.ledger for raw in page.events)
        inserted = await self._writer.store_batch(batch.events, last_ledger, page.cursor)
        return IndexerCycleResult(
            fetched=len(page.events),
            decoded=len(batch.events),
            skipped=batch.skipped,
            rejected=batch.rejected,
            inserted=inserted,
            last_ledger=last_ledger,
            cursor=page.cursor,
        )

    def _start_ledger_for(self, last_ledger: int) -> int:
        """Return the first ledger to request after ``last_ledger``."""
        initial = self._config.initial_ledger
        if last_ledger == 0 and initial is not None:
            return initial
        return last_ledger + 1

    def _decode_batch(self, events: cabc.Sequence[RawContractEvent]) -> _DecodedBatch:
        batch = _DecodedBatch()
        for raw in events:
            try:
                event = decode_loan_event(raw)
            except EventDecodeError as exc:
                batch.rejected += 1
                self._event_logger.log_event_rejected(exc, raw.ledger)
                continue
            if event is None:
                batch.skipped += 1
                self._event_logger.log_event_skipped(raw.id, raw.ledger)
                continue
            batch.events.append(event)
        return batch

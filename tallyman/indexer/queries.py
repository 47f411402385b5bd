"""Read-only queries over the loan event store.

These back the public status and event-listing views. They never write and
can run alongside the indexer, which is the store's only writer.
"""

from __future__ import annotations

import dataclasses
import typing as typ

from sqlalchemy import func, select

from tallyman.ledger import LoanEventKind, LoanEventRecord, ProgressReader

if typ.TYPE_CHECKING:
    import datetime as dt

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
    from sqlalchemy.sql import Select

    from tallyman.ledger.models import IndexerProgress

_DEFAULT_BORROWER_LIMIT = 50
_DEFAULT_RECENT_LIMIT = 20


@dataclasses.dataclass(frozen=True, slots=True)
class StoredLoanEvent:
    """A loan event as read back from the store."""

    event_id: str
    kind: LoanEventKind
    borrower: str
    loan_id: int | None
    amount: str | None
    ledger: int
    ledger_closed_at: dt.datetime
    tx_hash: str
    created_at: dt.datetime

    @classmethod
    def from_record(cls, record: LoanEventRecord) -> StoredLoanEvent:
        """Build a read model from an ORM row."""
        return cls(
            event_id=record.event_id,
            kind=LoanEventKind(record.event_type),
            borrower=record.borrower,
            loan_id=record.loan_id,
            amount=record.amount,
            ledger=record.ledger,
            ledger_closed_at=record.ledger_closed_at,
            tx_hash=record.tx_hash,
            created_at=record.created_at,
        )


@dataclasses.dataclass(frozen=True, slots=True)
class IndexerStatus:
    """Indexer position plus event totals."""

    progress: IndexerProgress
    total_events: int
    events_by_kind: dict[LoanEventKind, int]


@dataclasses.dataclass(frozen=True, slots=True)
class EventPageView:
    """One page of events with the information needed to page further."""

    events: list[StoredLoanEvent]
    total: int
    limit: int
    offset: int


def _require_positive_limit(limit: int) -> None:
    if limit < 1:
        msg = f"limit must be positive, got: {limit}"
        raise ValueError(msg)


def _require_non_negative_offset(offset: int) -> None:
    if offset < 0:
        msg = f"offset must be non-negative, got: {offset}"
        raise ValueError(msg)


class LoanEventQueries:
    """Query indexed loan events and the indexer position."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        """Create a query service bound to a database session factory."""
        self._session_factory = session_factory
        self._progress = ProgressReader(session_factory)

    async def get_status(self) -> IndexerStatus:
        """Return the current position, total events and counts per kind."""
        progress = await self._progress.get_progress()
        async with self._session_factory() as session:
            rows = (
                await session.execute(
                    select(LoanEventRecord.event_type, func.count()).group_by(
                        LoanEventRecord.event_type
                    )
                )
            ).all()
        by_kind = {LoanEventKind(event_type): int(count) for event_type, count in rows}
        return IndexerStatus(
            progress=progress,
            total_events=sum(by_kind.values()),
            events_by_kind=by_kind,
        )

    async def events_for_borrower(
        self,
        borrower: str,
        *,
        limit: int = _DEFAULT_BORROWER_LIMIT,
        offset: int = 0,
    ) -> EventPageView:
        """Return a borrower's events, newest ledger first."""
        _require_positive_limit(limit)
        _require_non_negative_offset(offset)
        async with self._session_factory() as session:
            total = await session.scalar(
                select(func.count())
                .select_from(LoanEventRecord)
                .where(LoanEventRecord.borrower == borrower)
            )
            query = (
                select(LoanEventRecord)
                .where(LoanEventRecord.borrower == borrower)
                .order_by(LoanEventRecord.ledger.desc(), LoanEventRecord.id.desc())
                .limit(limit)
                .offset(offset)
            )
            events = await self._load(session, query)
        return EventPageView(
            events=events, total=int(total or 0), limit=limit, offset=offset
        )

    async def events_for_loan(self, loan_id: int) -> list[StoredLoanEvent]:
        """Return the lifecycle of one loan, oldest ledger first."""
        async with self._session_factory() as session:
            query = (
                select(LoanEventRecord)
                .where(LoanEventRecord.loan_id == loan_id)
                .order_by(LoanEventRecord.ledger.asc(), LoanEventRecord.id.asc())
            )
            return await self._load(session, query)

    async def recent_events(
        self,
        *,
        limit: int = _DEFAULT_RECENT_LIMIT,
        kind: LoanEventKind | None = None,
    ) -> list[StoredLoanEvent]:
        """Return the most recent events, optionally of a single kind."""
        _require_positive_limit(limit)
        query = select(LoanEventRecord)
        if kind is not None:
            query = query.where(LoanEventRecord.event_type == kind.value)
        query = query.order_by(
            LoanEventRecord.ledger.desc(), LoanEventRecord.id.desc()
        ).limit(limit)
        async with self._session_factory() as session:
            return await self._load(session, query)

    @staticmethod
    async def _load(
        session: AsyncSession, query: Select[tuple[LoanEventRecord]]
    ) -> list[StoredLoanEvent]:
        records = (await session.scalars(query)).all()
        return [StoredLoanEvent.from_record(record) for record in records]

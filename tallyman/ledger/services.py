"""Services for persisting decoded loan events and the indexer position."""

from __future__ import annotations

import typing as typ

from sqlalchemy.dialects import postgresql, sqlite

from tallyman.common.time import utcnow
from tallyman.ledger.errors import NegativeLedgerError, TimezoneAwareRequiredError
from tallyman.ledger.models import IndexerProgress
from tallyman.ledger.storage import (
    PROGRESS_ROW_ID,
    IndexerStateRecord,
    LoanEventRecord,
)

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
    from sqlalchemy.sql.dml import Insert

    from tallyman.ledger.models import LoanEvent

    SessionFactory: typ.TypeAlias = async_sessionmaker[AsyncSession]


class UnsupportedDialectError(RuntimeError):
    """Raised when the store runs on a database without upsert support."""

    def __init__(self, dialect_name: str) -> None:
        """Name the dialect that cannot express insert-if-absent."""
        super().__init__(f"insert-if-absent is not supported on {dialect_name}")


def _event_row(event: LoanEvent) -> dict[str, typ.Any]:
    if event.ledger_closed_at.tzinfo is None:
        raise TimezoneAwareRequiredError.for_ledger_close()
    return {
        "event_id": event.event_id,
        "event_type": event.kind.value,
        "loan_id": event.loan_id,
        "borrower": event.subject,
        "amount": event.amount,
        "ledger": event.ledger,
        "ledger_closed_at": event.ledger_closed_at,
        "tx_hash": event.tx_hash,
        "contract_id": event.contract_id,
        "topics": list(event.raw_topics),
        "value": event.raw_value,
        "created_at": utcnow(),
    }


def insert_if_absent(dialect_name: str, row: dict[str, typ.Any]) -> Insert:
    """Build an INSERT that silently ignores an existing ``event_id``."""
    match dialect_name:
        case "postgresql":
            stmt = postgresql.insert(LoanEventRecord).values(**row)
        case "sqlite":
            stmt = sqlite.insert(LoanEventRecord).values(**row)
        case _:
            raise UnsupportedDialectError(dialect_name)
    return stmt.on_conflict_do_nothing(index_elements=["event_id"])


class LedgerBatchWriter:
    """Write a batch of loan events and advance the indexer in one transaction."""

    def __init__(self, session_factory: SessionFactory) -> None:
        """Store the session factory used for batch transactions."""
        self._session_factory = session_factory

    async def store_batch(
        self,
        events: cabc.Sequence[LoanEvent],
        new_ledger: int,
        new_cursor: str | None,
    ) -> int:
        """Persist ``events`` and move the progress row to ``new_ledger``.

        Events whose ``event_id`` is already stored are skipped without error,
        since overlapping polls redeliver them. The progress row is updated in
        the same transaction, so either every new event and the new position
        become visible together or nothing does. The stored ledger never moves
        backwards.

        Returns
        -------
        int
            Number of events that were not already present.

        """
        if new_ledger < 0:
            raise NegativeLedgerError(new_ledger)
        rows = [_event_row(event) for event in events]

        async with self._session_factory() as session, session.begin():
            dialect_name = session.get_bind().dialect.name
            inserted = 0
            for row in rows:
                if await self._insert_event(session, dialect_name, row):
                    inserted += 1
            await self._advance_progress(session, new_ledger, new_cursor)
        return inserted

    async def _insert_event(
        self,
        session: AsyncSession,
        dialect_name: str,
        row: dict[str, typ.Any],
    ) -> bool:
        """Insert one event row, returning False when it already existed."""
        result = await session.execute(insert_if_absent(dialect_name, row))
        return bool(result.rowcount)

    @staticmethod
    async def _advance_progress(
        session: AsyncSession, new_ledger: int, new_cursor: str | None
    ) -> None:
        state = await session.get(IndexerStateRecord, PROGRESS_ROW_ID)
        if state is None:
            state = IndexerStateRecord(id=PROGRESS_ROW_ID, last_indexed_ledger=0)
            session.add(state)
        state.last_indexed_ledger = max(state.last_indexed_ledger or 0, new_ledger)
        state.last_indexed_cursor = new_cursor
        state.updated_at = utcnow()


class ProgressReader:
    """Read the indexer's resume position."""

    def __init__(self, session_factory: SessionFactory) -> None:
        """Store the session factory used for reads."""
        self._session_factory = session_factory

    async def get_progress(self) -> IndexerProgress:
        """Return the stored position, or ledger 0 when no row exists yet."""
        async with self._session_factory() as session:
            state = await session.get(IndexerStateRecord, PROGRESS_ROW_ID)
            if state is None:
                return IndexerProgress()
            return IndexerProgress(
                last_ledger=state.last_indexed_ledger,
                last_cursor=state.last_indexed_cursor,
                updated_at=state.updated_at,
            )

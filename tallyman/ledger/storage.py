"""Persistence models for the loan event store and indexer position."""

from __future__ import annotations

import datetime as dt
import typing as typ

from sqlalchemy import (
    JSON,
    BigInteger,
    DateTime,
    Index,
    String,
    Text,
    insert,
    select,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

if typ.TYPE_CHECKING:
    from sqlalchemy.engine import Dialect
    from sqlalchemy.ext.asyncio import AsyncEngine

from tallyman.common.time import utcnow
from tallyman.ledger.errors import TimezoneAwareRequiredError

# The indexer keeps exactly one position row.
PROGRESS_ROW_ID = 1


class Base(DeclarativeBase):
    """Base declarative class for ledger models."""


class UTCDateTime(TypeDecorator[dt.datetime]):
    """DateTime wrapper that round-trips UTC tzinfo even on SQLite."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(
        self, value: dt.datetime | None, dialect: Dialect
    ) -> dt.datetime | None:
        """Force bound datetime values to UTC with tzinfo."""
        if value is None:
            return None
        if value.tzinfo is None:
            raise TimezoneAwareRequiredError.for_column()
        return value.astimezone(dt.UTC)

    def process_result_value(
        self, value: dt.datetime | None, dialect: Dialect
    ) -> dt.datetime | None:
        """Ensure result datetimes are UTC and timezone aware."""
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=dt.UTC)
        return value.astimezone(dt.UTC)


class LoanEventRecord(Base):
    """Append-only record of a decoded loan manager contract event.

    ``amount`` is stored as text: i128 values exceed what SQLite's NUMERIC
    affinity keeps exactly. Ledger sequences are u32 on chain, so they use
    ``BigInteger`` to stay clear of Postgres' signed ``INTEGER``.
    """

    __tablename__ = "loan_events"
    __table_args__ = (
        Index("ix_loan_events_event_type", "event_type"),
        Index("ix_loan_events_borrower", "borrower"),
        Index("ix_loan_events_loan_id", "loan_id"),
        Index("ix_loan_events_ledger", "ledger"),
        Index("ix_loan_events_tx_hash", "tx_hash"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    event_id: Mapped[str] = mapped_column(String(255), unique=True)
    event_type: Mapped[str] = mapped_column(String(50))
    loan_id: Mapped[int | None] = mapped_column(BigInteger, default=None)
    borrower: Mapped[str] = mapped_column(String(255))
    amount: Mapped[str | None] = mapped_column(String(64), default=None)
    ledger: Mapped[int] = mapped_column(BigInteger)
    ledger_closed_at: Mapped[dt.datetime] = mapped_column(UTCDateTime())
    tx_hash: Mapped[str] = mapped_column(String(255))
    contract_id: Mapped[str] = mapped_column(String(255))
    topics: Mapped[list[str]] = mapped_column(JSON)
    value: Mapped[str] = mapped_column(Text())
    created_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=utcnow)


class IndexerStateRecord(Base):
    """Singleton row holding the last processed ledger and cursor."""

    __tablename__ = "indexer_state"

    id: Mapped[int] = mapped_column(primary_key=True)
    last_indexed_ledger: Mapped[int] = mapped_column(BigInteger, default=0)
    last_indexed_cursor: Mapped[str | None] = mapped_column(String(255), default=None)
    updated_at: Mapped[dt.datetime] = mapped_column(
        UTCDateTime(), default=utcnow, onupdate=utcnow
    )


async def init_ledger_storage(engine: AsyncEngine) -> None:
    """Create the ledger tables and seed the progress row when absent."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        existing = await conn.scalar(
            select(IndexerStateRecord.id).where(
                IndexerStateRecord.id == PROGRESS_ROW_ID
            )
        )
        if existing is None:
            await conn.execute(
                insert(IndexerStateRecord).values(
                    id=PROGRESS_ROW_ID,
                    last_indexed_ledger=0,
                    last_indexed_cursor=None,
                    updated_at=utcnow(),
                )
            )

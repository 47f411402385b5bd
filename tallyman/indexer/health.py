"""Indexer lag and health query service.

Health is computed on demand from the progress row so operators can tell a
quiet contract from a stalled indexer.
"""

from __future__ import annotations

import dataclasses
import datetime as dt
import typing as typ

from tallyman.common.time import utcnow
from tallyman.ledger import ProgressReader

if typ.TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from tallyman.ledger.models import IndexerProgress


@dataclasses.dataclass(frozen=True, slots=True)
class IndexerHealthConfig:
    """Configuration for indexer health thresholds."""

    stalled_threshold: dt.timedelta = dataclasses.field(
        default_factory=lambda: dt.timedelta(hours=1)
    )


@dataclasses.dataclass(frozen=True, slots=True)
class IndexerHealth:
    """Computed health metrics for the indexer."""

    last_ledger: int
    seconds_since_update: float | None
    has_cursor: bool
    is_stalled: bool


def _compute_health(
    progress: IndexerProgress,
    now: dt.datetime,
    stalled_threshold: dt.timedelta,
) -> IndexerHealth:
    """Compute health metrics from an :class:`IndexerProgress`."""
    # The seeded row carries a timestamp but no ledger; it has never indexed.
    if progress.updated_at is None or progress.last_ledger == 0:
        seconds_since_update = None
        is_stalled = True
    else:
        seconds_since_update = (now - progress.updated_at).total_seconds()
        is_stalled = seconds_since_update > stalled_threshold.total_seconds()

    return IndexerHealth(
        last_ledger=progress.last_ledger,
        seconds_since_update=seconds_since_update,
        has_cursor=progress.last_cursor is not None,
        is_stalled=is_stalled,
    )


class IndexerHealthService:
    """Report whether the indexer is keeping up.

    The progress row only changes when a cycle persists events, so a contract
    with no activity for longer than the threshold also reads as stalled.
    Pick the threshold with the contract's expected traffic in mind.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        config: IndexerHealthConfig | None = None,
    ) -> None:
        """Create a health service bound to a database session factory."""
        self._progress = ProgressReader(session_factory)
        self._config = config or IndexerHealthConfig()

    async def get_health(self) -> IndexerHealth:
        """Compute current health metrics."""
        progress = await self._progress.get_progress()
        return _compute_health(progress, utcnow(), self._config.stalled_threshold)

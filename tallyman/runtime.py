"""Tallyman runtime entrypoint.

Boots the loan event indexer as a long-running process. The indexer polls
until the process receives SIGINT or SIGTERM, then finishes the cycle in
flight and releases its resources.

Configuration is driven by environment variables:

- ``TALLYMAN_DATABASE_URL``: SQLAlchemy async database URL (default
  ``sqlite+aiosqlite:///tallyman.db``)
- ``TALLYMAN_LOG_LEVEL``: Log level (default ``INFO``)
- Indexer settings read by :meth:`tallyman.indexer.IndexerConfig.from_env`

Run the indexer directly with ``python -m tallyman.runtime``.
"""

from __future__ import annotations

import asyncio
import os
import signal

from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from tallyman.indexer import EventIndexer, IndexerConfig, IndexerConfigError
from tallyman.ledger import init_ledger_storage
from tallyman.logging import (
    configure_logging,
    get_logger,
    log_error,
    log_info,
    log_warning,
)
from tallyman.soroban import SorobanRpcClient, SorobanRpcConfig

__all__ = ["main", "serve"]

logger = get_logger(__name__)

_DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///tallyman.db"


def _install_signal_handlers(shutdown: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, shutdown.set)


async def serve(
    config: IndexerConfig,
    database_url: str,
    *,
    shutdown: asyncio.Event | None = None,
) -> None:
    """Run the indexer until ``shutdown`` is set.

    Parameters
    ----------
    config
        Indexer settings. When ``contract_id`` is missing the storage is
        still initialised but no polling happens.
    database_url
        SQLAlchemy async URL of the loan event store.
    shutdown
        Event that ends the run. When omitted, SIGINT and SIGTERM set it.

    """
    engine = create_async_engine(database_url)
    try:
        await init_ledger_storage(engine)
        if not config.contract_id:
            log_warning(
                logger,
                "TALLYMAN_LOAN_MANAGER_CONTRACT_ID is not set; "
                "the loan event indexer will not start",
            )
            return

        if shutdown is None:
            shutdown = asyncio.Event()
            _install_signal_handlers(shutdown)

        session_factory = async_sessionmaker(engine, expire_on_commit=False)
        client = SorobanRpcClient(
            SorobanRpcConfig(endpoint=config.rpc_url, timeout_s=config.rpc_timeout_s)
        )
        indexer = EventIndexer(session_factory, client, config)
        try:
            await indexer.start()
            await shutdown.wait()
            log_info(logger, "Shutdown requested; waiting for the current cycle")
            indexer.stop()
            await indexer.join()
        finally:
            await client.aclose()
    finally:
        await engine.dispose()


def main() -> None:
    """Start the Tallyman indexer process.

    Reads ``TALLYMAN_LOG_LEVEL`` and ``TALLYMAN_DATABASE_URL`` plus the
    indexer settings from the environment.

    Raises
    ------
    SystemExit
        If an indexer setting is invalid.

    """
    log_level_str = os.environ.get("TALLYMAN_LOG_LEVEL", "INFO")
    normalized_level, invalid_level = configure_logging(log_level_str)
    if invalid_level:
        log_warning(
            logger,
            "Invalid TALLYMAN_LOG_LEVEL %r, falling back to %s",
            log_level_str,
            normalized_level,
        )

    try:
        config = IndexerConfig.from_env()
    except IndexerConfigError as exc:
        # Validation failures need no traceback
        log_error(logger, "Invalid indexer configuration: %s", exc)
        raise SystemExit(1) from exc

    database_url = os.environ.get("TALLYMAN_DATABASE_URL", "").strip()
    log_info(
        logger,
        "Starting Tallyman indexer (rpc_url=%s, log_level=%s)",
        config.rpc_url,
        normalized_level,
    )
    asyncio.run(serve(config, database_url or _DEFAULT_DATABASE_URL))


if __name__ == "__main__":
    main()

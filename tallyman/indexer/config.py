"""Configuration for the loan event indexer.

Usage
-----
Build a configuration explicitly:

>>> config = IndexerConfig(contract_id="CA3D...", poll_interval_ms=5000)
>>> config.poll_interval_s
5.0

Or load it from the environment:

>>> import os
>>> os.environ["TALLYMAN_LOAN_MANAGER_CONTRACT_ID"] = "CA3D..."
>>> IndexerConfig.from_env().contract_id
'CA3D...'

"""

from __future__ import annotations

import dataclasses as dc
import os

from tallyman.indexer.errors import IndexerConfigError

_DEFAULT_RPC_URL = "https://soroban-testnet.stellar.org"
_DEFAULT_POLL_INTERVAL_MS = 30_000
_DEFAULT_BATCH_SIZE = 100
_DEFAULT_RPC_TIMEOUT_S = 20.0


@dc.dataclass(frozen=True, slots=True)
class IndexerConfig:
    """Settings supplied to the indexer at construction.

    Attributes
    ----------
    contract_id
        Strkey of the loan manager contract. ``None`` means the indexer must
        not run.
    rpc_url
        Soroban RPC endpoint.
    poll_interval_ms
        Fixed delay between the end of one cycle and the start of the next.
    batch_size
        Maximum number of events requested per cycle.
    rpc_timeout_s
        HTTP timeout applied to each RPC call.
    initial_ledger
        First ledger to request while the stored position is still 0. RPC
        nodes reject start ledgers older than their retention window, so a
        fresh store usually needs one. ``None`` starts at ledger 1.

    """

    contract_id: str | None = None
    rpc_url: str = _DEFAULT_RPC_URL
    poll_interval_ms: int = _DEFAULT_POLL_INTERVAL_MS
    batch_size: int = _DEFAULT_BATCH_SIZE
    rpc_timeout_s: float = _DEFAULT_RPC_TIMEOUT_S
    initial_ledger: int | None = None

    def __post_init__(self) -> None:
        """Reject non-positive cadence and batch settings."""
        if self.poll_interval_ms <= 0:
            raise IndexerConfigError.not_positive(
                "poll_interval_ms", self.poll_interval_ms
            )
        if self.batch_size <= 0:
            raise IndexerConfigError.not_positive("batch_size", self.batch_size)
        if self.rpc_timeout_s <= 0:
            raise IndexerConfigError.not_positive("rpc_timeout_s", self.rpc_timeout_s)
        if self.initial_ledger is not None and self.initial_ledger <= 0:
            raise IndexerConfigError.not_positive("initial_ledger", self.initial_ledger)

    @property
    def poll_interval_s(self) -> float:
        """Return the poll interval in seconds."""
        return self.poll_interval_ms / 1000

    @staticmethod
    def _parse_positive_int(env_var: str, default: int) -> int:
        raw = os.environ.get(env_var, "")
        if not raw.strip():
            return default
        try:
            value = int(raw)
        except ValueError as exc:
            raise IndexerConfigError.not_positive(env_var, raw) from exc
        if value < 1:
            raise IndexerConfigError.not_positive(env_var, value)
        return value

    @staticmethod
    def _parse_positive_float(env_var: str, default: float) -> float:
        raw = os.environ.get(env_var, "")
        if not raw.strip():
            return default
        try:
            value = float(raw)
        except ValueError as exc:
            raise IndexerConfigError.not_positive(env_var, raw) from exc
        if value <= 0:
            raise IndexerConfigError.not_positive(env_var, value)
        return value

    @classmethod
    def from_env(cls) -> IndexerConfig:
        """Create configuration from environment variables.

        Reads the following environment variables:

        - ``TALLYMAN_LOAN_MANAGER_CONTRACT_ID``: Contract to index. Optional
          here; a missing value leaves ``contract_id`` as ``None``.
        - ``TALLYMAN_SOROBAN_RPC_URL``: RPC endpoint override.
        - ``TALLYMAN_INDEXER_POLL_INTERVAL_MS``: Positive integer.
        - ``TALLYMAN_INDEXER_BATCH_SIZE``: Positive integer.
        - ``TALLYMAN_RPC_TIMEOUT_S``: Positive number of seconds.
        - ``TALLYMAN_INDEXER_START_LEDGER``: Optional positive integer used
          while no progress has been recorded.

        Raises
        ------
        IndexerConfigError
            If a numeric setting is not a positive number.

        """
        contract_id = os.environ.get("TALLYMAN_LOAN_MANAGER_CONTRACT_ID", "").strip()
        rpc_url = os.environ.get("TALLYMAN_SOROBAN_RPC_URL", "").strip()
        initial_ledger: int | None = None
        if os.environ.get("TALLYMAN_INDEXER_START_LEDGER", "").strip():
            initial_ledger = cls._parse_positive_int("TALLYMAN_INDEXER_START_LEDGER", 1)
        return cls(
            contract_id=contract_id or None,
            rpc_url=rpc_url or _DEFAULT_RPC_URL,
            poll_interval_ms=cls._parse_positive_int(
                "TALLYMAN_INDEXER_POLL_INTERVAL_MS", _DEFAULT_POLL_INTERVAL_MS
            ),
            batch_size=cls._parse_positive_int(
                "TALLYMAN_INDEXER_BATCH_SIZE", _DEFAULT_BATCH_SIZE
            ),
            rpc_timeout_s=cls._parse_positive_float(
                "TALLYMAN_RPC_TIMEOUT_S", _DEFAULT_RPC_TIMEOUT_S
            ),
            initial_ledger=initial_ledger,
        )

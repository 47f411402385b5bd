"""Soroban RPC client used by the indexer to pull contract events."""

from __future__ import annotations

import dataclasses
import itertools
import typing as typ

import httpx
import msgspec

from .errors import SorobanResponseShapeError, SorobanRpcError
from .models import EventPage, GetEventsEnvelope

_HTTP_ERROR_STATUS_THRESHOLD = 400


class EventSource(typ.Protocol):
    """Interface for fetching contract events for indexing."""

    async def get_events(
        self, *, contract_id: str, start_ledger: int, limit: int
    ) -> EventPage:
        """Return up to ``limit`` events of ``contract_id`` from ``start_ledger``."""
        ...


@dataclasses.dataclass(frozen=True, slots=True)
class SorobanRpcConfig:
    """Configuration for the Soroban JSON-RPC client."""

    endpoint: str = "https://soroban-testnet.stellar.org"
    timeout_s: float = 20.0
    user_agent: str = "tallyman/0.1"


class SorobanRpcClient:
    """JSON-RPC implementation of :class:`EventSource`."""

    def __init__(
        self,
        config: SorobanRpcConfig,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialise the client, creating an HTTP client when none is given."""
        self._config = config
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=config.timeout_s,
            headers={
                "User-Agent": config.user_agent,
                "Accept": "application/json",
            },
        )
        self._request_ids = itertools.count(1)

    async def aclose(self) -> None:
        """Close any owned HTTP resources."""
        if self._owns_client:
            await self._client.aclose()

    async def get_events(
        self, *, contract_id: str, start_ledger: int, limit: int
    ) -> EventPage:
        """Fetch one page of events emitted by ``contract_id``.

        ``start_ledger`` is inclusive, matching the RPC's ``startLedger``.
        """
        params = {
            "startLedger": start_ledger,
            "filters": [{"type": "contract", "contractIds": [contract_id]}],
            "pagination": {"limit": limit},
        }
        return await self._call_get_events(params)

    async def _call_get_events(self, params: dict[str, typ.Any]) -> EventPage:
        response = await self._client.post(
            self._config.endpoint,
            json={
                "jsonrpc": "2.0",
                "id": next(self._request_ids),
                "method": "getEvents",
                "params": params,
            },
        )
        if response.status_code >= _HTTP_ERROR_STATUS_THRESHOLD:
            raise SorobanRpcError.http_error(response.status_code)
        return _parse_get_events(response.content)


def _parse_get_events(content: bytes) -> EventPage:
    """Decode a ``getEvents`` response body into an :class:`EventPage`."""
    try:
        envelope = msgspec.json.decode(content, type=GetEventsEnvelope)
    except msgspec.DecodeError as exc:  # also covers ValidationError
        raise SorobanResponseShapeError.invalid(str(exc)) from exc

    if envelope.error is not None:
        raise SorobanRpcError.rpc_error(envelope.error.code, envelope.error.message)
    if envelope.result is None:
        raise SorobanResponseShapeError.invalid("missing result")
    return envelope.result

"""Wire structures for the Soroban RPC ``getEvents`` method."""

from __future__ import annotations

import msgspec


class RawContractEvent(msgspec.Struct, kw_only=True, rename="camel", frozen=True):
    """One event as returned by ``getEvents``.

    Attributes
    ----------
    id : str
        Source-assigned unique event identifier.
    type : str
        Event type; the indexer only handles ``contract`` events.
    ledger : int
        Ledger sequence the event was emitted in.
    ledger_closed_at : str
        RFC 3339 close time of that ledger.
    contract_id : str
        Strkey of the emitting contract.
    tx_hash : str
        Hash of the transaction that emitted the event.
    topic : list[str]
        Topic values as base64 XDR ``ScVal``.
    value : str
        Event payload as base64 XDR ``ScVal``.

    """

    id: str
    type: str
    ledger: int
    ledger_closed_at: str
    contract_id: str = ""
    tx_hash: str = ""
    topic: list[str] = msgspec.field(default_factory=list)
    value: str = ""
    in_successful_contract_call: bool = True


class EventPage(msgspec.Struct, kw_only=True, rename="camel", frozen=True):
    """One page of events plus the cursor to resume after it."""

    events: list[RawContractEvent] = msgspec.field(default_factory=list)
    cursor: str | None = None
    latest_ledger: int | None = None


class RpcError(msgspec.Struct, kw_only=True):
    """JSON-RPC error member."""

    code: int | None = None
    message: str = ""


class GetEventsEnvelope(msgspec.Struct, kw_only=True):
    """JSON-RPC response envelope for ``getEvents``."""

    jsonrpc: str = "2.0"
    id: int | str | None = None
    result: EventPage | None = None
    error: RpcError | None = None

"""Decode raw Soroban contract events into loan domain events.

Topic layout emitted by the loan manager contract::

    topic[0]  Symbol   event kind (LoanRequested, LoanApproved, LoanRepaid)
    topic[1]  Address  borrower
    topic[2]  u32      loan id (optional)
    value     i128     amount (optional)

Events with any other kind symbol are not of interest and decode to ``None``.
A recognised event whose borrower cannot be read raises
:class:`EventDecodeError`; the caller decides whether to skip it. The loan id
and amount are best effort and fall back to ``None``.
"""

from __future__ import annotations

import struct
import typing as typ

from stellar_sdk import scval
from stellar_sdk import xdr as stellar_xdr

from tallyman.common.time import parse_rpc_timestamp
from tallyman.ledger.models import LoanEvent, LoanEventKind

from .errors import EventDecodeError

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from tallyman.soroban.models import RawContractEvent

# Errors raised by the XDR unpacker on malformed or truncated input.
_XDR_ERRORS = (ValueError, TypeError, IndexError, EOFError, struct.error)

_CONTRACT_EVENT_TYPE = "contract"

_LOAN_ID_DECODERS: dict[
    stellar_xdr.SCValType, cabc.Callable[[stellar_xdr.SCVal], int]
] = {
    stellar_xdr.SCValType.SCV_U32: scval.from_uint32,
    stellar_xdr.SCValType.SCV_U64: scval.from_uint64,
    stellar_xdr.SCValType.SCV_I32: scval.from_int32,
    stellar_xdr.SCValType.SCV_I64: scval.from_int64,
}

# Loan ids are stored in a signed 64-bit column.
_LOAN_ID_MIN = -(2**63)
_LOAN_ID_MAX = 2**63 - 1


def _parse_scval(encoded: str) -> stellar_xdr.SCVal | None:
    """Parse a base64 XDR ``ScVal``, returning ``None`` when malformed."""
    if not encoded:
        return None
    try:
        return stellar_xdr.SCVal.from_xdr(encoded)
    except _XDR_ERRORS:
        return None


def decode_kind(encoded: str) -> LoanEventKind | None:
    """Return the loan event kind named by a topic, if it is one we index."""
    value = _parse_scval(encoded)
    if value is None or value.type != stellar_xdr.SCValType.SCV_SYMBOL:
        return None
    try:
        return LoanEventKind(scval.from_symbol(value))
    except ValueError:
        return None


def decode_subject(event_id: str, encoded: str) -> str:
    """Return the strkey address carried by a topic.

    Raises
    ------
    EventDecodeError
        If the topic is not an address ``ScVal``.

    """
    value = _parse_scval(encoded)
    if value is None or value.type != stellar_xdr.SCValType.SCV_ADDRESS:
        raise EventDecodeError.invalid_subject(event_id)
    try:
        return scval.from_address(value).address
    except _XDR_ERRORS as exc:
        raise EventDecodeError.invalid_subject(event_id) from exc


def decode_loan_id(encoded: str) -> int | None:
    """Return the integer loan id carried by a topic, or ``None``.

    Ids outside the signed 64-bit range the store can hold are treated as
    undecodable, so a single odd event cannot fail its whole batch.
    """
    value = _parse_scval(encoded)
    if value is None:
        return None
    decoder = _LOAN_ID_DECODERS.get(value.type)
    if decoder is None:
        return None
    loan_id = decoder(value)
    if not _LOAN_ID_MIN <= loan_id <= _LOAN_ID_MAX:
        return None
    return loan_id


def decode_amount(encoded: str) -> str | None:
    """Render an ``i128`` payload as a decimal string, or ``None``.

    The conversion goes through Python's arbitrary precision ``int`` so the
    full i128 range survives unchanged.
    """
    value = _parse_scval(encoded)
    if value is None or value.type != stellar_xdr.SCValType.SCV_I128:
        return None
    return str(scval.from_int128(value))


def decode_loan_event(raw: RawContractEvent) -> LoanEvent | None:
    """Decode one raw event, returning ``None`` when it is not a loan event.

    Raises
    ------
    EventDecodeError
        If the event names a loan kind but its borrower or close time cannot
        be decoded.

    """
    if raw.type != _CONTRACT_EVENT_TYPE or not raw.in_successful_contract_call:
        return None
    if not raw.topic:
        return None

    kind = decode_kind(raw.topic[0])
    if kind is None:
        return None

    if len(raw.topic) < 2:  # noqa: PLR2004 - kind plus subject
        raise EventDecodeError.missing_subject(raw.id)
    subject = decode_subject(raw.id, raw.topic[1])
    loan_id = decode_loan_id(raw.topic[2]) if len(raw.topic) > 2 else None  # noqa: PLR2004

    try:
        ledger_closed_at = parse_rpc_timestamp(raw.ledger_closed_at)
    except ValueError as exc:
        raise EventDecodeError.invalid_timestamp(raw.id, raw.ledger_closed_at) from exc

    return LoanEvent(
        event_id=raw.id,
        kind=kind,
        subject=subject,
        loan_id=loan_id,
        amount=decode_amount(raw.value),
        ledger=raw.ledger,
        ledger_closed_at=ledger_closed_at,
        tx_hash=raw.tx_hash,
        contract_id=raw.contract_id,
        raw_topics=tuple(raw.topic),
        raw_value=raw.value,
    )

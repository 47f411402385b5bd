"""Unit tests for decoding raw contract events into loan events."""

from __future__ import annotations

import datetime as dt

import pytest
from stellar_sdk import scval

from tallyman.indexer.decoder import (
    decode_amount,
    decode_kind,
    decode_loan_event,
    decode_loan_id,
)
from tallyman.indexer.errors import EventDecodeError
from tallyman.ledger import LoanEventKind
from tests.unit.indexer_test_helpers import (
    BORROWER,
    CONTRACT_ID,
    address_topic,
    i128_value,
    make_raw_event,
    symbol_topic,
    u32_topic,
)


class TestDecodeLoanEvent:
    """Tests for decode_loan_event."""

    @pytest.mark.parametrize("kind", list(LoanEventKind))
    def test_decodes_each_known_kind(self, kind: LoanEventKind) -> None:
        """Every recognised symbol maps to its kind."""
        raw = make_raw_event("evt-1", ledger=100, kind=kind.value, loan_id=9)

        event = decode_loan_event(raw)

        assert event is not None
        assert event.kind is kind
        assert event.subject == BORROWER
        assert event.loan_id == 9
        assert event.amount == "1000"
        assert event.ledger == 100
        assert event.contract_id == CONTRACT_ID
        assert event.tx_hash == "tx-evt-1"
        assert event.raw_topics == tuple(raw.topic)
        assert event.raw_value == raw.value

    def test_parses_close_time_as_utc(self) -> None:
        """Close times are normalised to aware UTC datetimes."""
        raw = make_raw_event(
            "evt-1", ledger=1, ledger_closed_at="2025-03-01T14:00:00+02:00"
        )

        event = decode_loan_event(raw)

        assert event is not None
        assert event.ledger_closed_at == dt.datetime(2025, 3, 1, 12, 0, tzinfo=dt.UTC)
        assert event.ledger_closed_at.tzinfo == dt.UTC

    def test_unknown_kind_is_skipped(self) -> None:
        """Other contract events decode to None without raising."""
        raw = make_raw_event("evt-1", ledger=1, kind="CollateralPosted")

        assert decode_loan_event(raw) is None

    def test_non_symbol_kind_topic_is_skipped(self) -> None:
        """A first topic that is not a symbol is not a loan event."""
        raw = make_raw_event(
            "evt-1", ledger=1, topic=[u32_topic(3), address_topic(BORROWER)]
        )

        assert decode_loan_event(raw) is None

    def test_event_without_topics_is_skipped(self) -> None:
        """Events with no topics are ignored."""
        raw = make_raw_event("evt-1", ledger=1, topic=[])

        assert decode_loan_event(raw) is None

    def test_failed_contract_call_is_skipped(self) -> None:
        """Events from failed invocations never reached the chain state."""
        raw = make_raw_event("evt-1", ledger=1, in_successful_contract_call=False)

        assert decode_loan_event(raw) is None

    def test_garbage_kind_topic_is_skipped(self) -> None:
        """Undecodable XDR in the kind topic is treated as unknown."""
        raw = make_raw_event("evt-1", ledger=1, topic=["not-base64-xdr"])

        assert decode_loan_event(raw) is None

    def test_missing_subject_raises(self) -> None:
        """A loan event without a borrower topic cannot be stored."""
        raw = make_raw_event("evt-1", ledger=1, topic=[symbol_topic("LoanRepaid")])

        with pytest.raises(EventDecodeError) as excinfo:
            decode_loan_event(raw)

        assert excinfo.value.event_id == "evt-1"
        assert "missing subject" in excinfo.value.reason

    def test_non_address_subject_raises(self) -> None:
        """The borrower topic must be an address."""
        raw = make_raw_event(
            "evt-2",
            ledger=1,
            topic=[symbol_topic("LoanApproved"), symbol_topic("nobody")],
        )

        with pytest.raises(EventDecodeError, match="not an address"):
            decode_loan_event(raw)

    def test_invalid_close_time_raises(self) -> None:
        """An unparsable ledger close time rejects the event."""
        raw = make_raw_event("evt-3", ledger=1, ledger_closed_at="yesterday")

        with pytest.raises(EventDecodeError, match="close time"):
            decode_loan_event(raw)

    def test_loan_id_and_amount_are_optional(self) -> None:
        """Events without an id topic or amount payload still decode."""
        raw = make_raw_event("evt-1", ledger=1, loan_id=None, amount=None)

        event = decode_loan_event(raw)

        assert event is not None
        assert event.loan_id is None
        assert event.amount is None


class TestTopicDecoders:
    """Tests for the individual topic helpers."""

    def test_decode_kind_rejects_unknown_symbol(self) -> None:
        """Only loan manager symbols are recognised."""
        assert decode_kind(symbol_topic("LoanRequested")) is LoanEventKind.LOAN_REQUESTED
        assert decode_kind(symbol_topic("loanrequested")) is None
        assert decode_kind("") is None

    def test_decode_loan_id_accepts_wider_integers(self) -> None:
        """Loan ids encoded as u64 are accepted as well as u32."""
        assert decode_loan_id(scval.to_uint64(2**40).to_xdr()) == 2**40
        assert decode_loan_id(u32_topic(12)) == 12

    def test_decode_loan_id_outside_storable_range_is_none(self) -> None:
        """u64 ids beyond the signed 64-bit column range decode to None."""
        assert decode_loan_id(scval.to_uint64(2**64 - 1).to_xdr()) is None
        assert decode_loan_id(scval.to_uint64(2**63).to_xdr()) is None
        assert decode_loan_id(scval.to_uint64(2**63 - 1).to_xdr()) == 2**63 - 1
        assert decode_loan_id(scval.to_int64(-(2**63)).to_xdr()) == -(2**63)

    def test_decode_loan_id_ignores_other_types(self) -> None:
        """Non-integer loan id topics decode to None."""
        assert decode_loan_id(symbol_topic("twelve")) is None
        assert decode_loan_id("%%%") is None

    def test_decode_amount_keeps_i128_precision(self) -> None:
        """Amounts beyond 64 bits are rendered exactly."""
        big = -(2**127)

        assert decode_amount(i128_value(big)) == str(big)

    def test_decode_amount_ignores_non_i128(self) -> None:
        """Payloads that are not i128 decode to None."""
        assert decode_amount(u32_topic(5)) is None
        assert decode_amount("") is None

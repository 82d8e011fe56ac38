"""
Data Model Tests.
"""

import pytest

from puzzle_flows.models import (
    Chain,
    ChainFamily,
    ClassifiedEvent,
    CollectionReport,
    EventType,
    PuzzleStatus,
    RawTransaction,
    RunMode,
    TxInput,
    TxOutput,
    get_chain_family,
    normalize_txid,
    sort_transactions,
    timestamp_to_date,
    to_display_units,
)


class TestConversions:
    """Tests for unit and date helpers."""

    def test_timestamp_to_date_is_utc(self):
        assert timestamp_to_date(0) == "1970-01-01 00:00:00"
        assert timestamp_to_date(None) is None

    @pytest.mark.parametrize("value, decimals, expected", [
        (100_000_000, 8, 1.0),
        (1, 8, 0.00000001),
        (1_500_000_000_000_000_000, 18, 1.5),
    ])
    def test_to_display_units(self, value, decimals, expected):
        assert to_display_units(value, decimals) == expected

    def test_normalize_txid(self):
        assert normalize_txid("0xABCdef") == "abcdef"
        assert normalize_txid("ABC") == "abc"

    def test_chain_family(self):
        assert get_chain_family(Chain.DECRED) == ChainFamily.UTXO
        assert get_chain_family(Chain.ETHEREUM) == ChainFamily.ACCOUNT


class TestEnums:
    """Tests for enum parsing."""

    def test_status_parsing(self):
        assert PuzzleStatus.from_value("Swept") == PuzzleStatus.SWEPT
        assert PuzzleStatus.from_value("claimed") == PuzzleStatus.CLAIMED
        assert PuzzleStatus.from_value(None) == PuzzleStatus.UNSOLVED
        assert PuzzleStatus.from_value("lost") == PuzzleStatus.UNSOLVED

    def test_status_parsing_non_string(self):
        assert PuzzleStatus.from_value(5) == PuzzleStatus.UNSOLVED
        assert PuzzleStatus.from_value(["swept"]) == PuzzleStatus.UNSOLVED
        assert PuzzleStatus.from_value({"value": "solved"}) == PuzzleStatus.UNSOLVED

    def test_run_mode(self):
        assert RunMode.BOTH.fetches and RunMode.BOTH.processes
        assert RunMode.FETCH.fetches and not RunMode.FETCH.processes
        assert RunMode.PROCESS.processes and not RunMode.PROCESS.fetches


class TestRawTransaction:
    """Tests for RawTransaction."""

    def test_lists_coerced_to_tuples(self):
        tx = RawTransaction("a", 1, [TxInput("x", 1)], [TxOutput("y", 1)])

        assert isinstance(tx.inputs, tuple)
        assert isinstance(hash(tx), int)

    def test_from_dict(self):
        tx = RawTransaction.from_dict({
            "txid": "a",
            "timestamp": "100",
            "inputs": [{"source_address": None, "value": 5}],
            "outputs": [{"address": "y", "value": "7"}],
        })

        assert tx.timestamp == 100
        assert tx.inputs == (TxInput(None, 5),)
        assert tx.outputs == (TxOutput("y", 7),)

    def test_sort_unconfirmed_last(self):
        txs = [RawTransaction("p", None), RawTransaction("b", 2), RawTransaction("a", 1)]

        assert [t.txid for t in sort_transactions(txs)] == ["a", "b", "p"]


class TestClassifiedEvent:
    """Tests for ClassifiedEvent."""

    def test_enum_type_stored_as_string(self):
        event = ClassifiedEvent(EventType.CLAIM, "0xAB")

        assert event.event_type == "claim"
        assert event.is_terminal
        assert event.normalized_txid == "ab"
        assert event.sort_priority == 4

    def test_to_dict_omits_missing_fields(self):
        assert ClassifiedEvent("funding", "a").to_dict() == {"type": "funding", "txid": "a"}

    def test_from_dict_ignores_bad_amount(self):
        event = ClassifiedEvent.from_dict({"type": "funding", "txid": "a", "amount": "lots"})

        assert event.amount is None


class TestCollectionReport:
    def test_record_failure(self):
        report = CollectionReport("zden")

        report.record_failure("1Puzzle: timed out")

        assert report.failed == 1
        assert report.to_dict()["errors"] == ["1Puzzle: timed out"]

    def test_phase_skips_reported_separately(self):
        report = CollectionReport("zden", fetch_skipped=3, skipped=1)

        data = report.to_dict()

        assert data["fetch_skipped"] == 3
        assert data["skipped"] == 1

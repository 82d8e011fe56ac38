"""
Orchestrator Tests.

============================================================
PURPOSE
============================================================
Tests for the fetch/process pipeline with stub adapters.

TEST CATEGORIES:
- End-to-end fetch, classify, merge and write-back
- Cache reuse and forced re-fetch
- Per-address failure isolation and timeouts
- Bounded concurrency
- Collection-level skips and filters

============================================================
"""

import asyncio
import json
from unittest.mock import patch

import pytest

from puzzle_flows.cache import CacheStore
from puzzle_flows.config import FlowsConfig
from puzzle_flows.documents import CollectionDocument
from puzzle_flows.exceptions import DocumentError, RateLimitedError
from puzzle_flows.models import Chain, RawTransaction, RunMode, TxInput, TxOutput
from puzzle_flows.orchestrator import Orchestrator
from puzzle_flows.registry import AdapterRegistry


AUTHOR = "1Author"
PUZZLE_A = "1PuzzleA"
PUZZLE_B = "1PuzzleB"
SOLVER = "1Solver"
T0 = 1_500_000_000


# ============================================================
# FIXTURES
# ============================================================

class StubAdapter:
    """Adapter stand-in returning canned histories."""

    def __init__(self, histories, chain=Chain.BITCOIN, delay=0.0, errors=None):
        self.chain = chain
        self.name = f"stub-{chain.value}"
        self.histories = histories
        self.delay = delay
        self.errors = errors or {}
        self.calls = []
        self.active = 0
        self.max_active = 0

    async def fetch_transactions(self, address):
        self.calls.append(address)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if address in self.errors:
                raise self.errors[address]
            return self.histories.get(address, [])
        finally:
            self.active -= 1

    def get_stats(self):
        return {}

    async def close(self):
        pass


def solved_history(address):
    return [
        RawTransaction(
            f"fund-{address}", T0,
            (TxInput(AUTHOR, 110_000_000),),
            (TxOutput(address, 100_000_000),),
        ),
        RawTransaction(
            f"claim-{address}", T0 + 3600,
            (TxInput(address, 100_000_000),),
            (TxOutput(SOLVER, 99_990_000),),
        ),
    ]


def write_document(data_dir, name="b1000", puzzles=None, authors=(AUTHOR,)):
    document = {
        "author": {"addresses": list(authors)},
        "puzzles": puzzles if puzzles is not None else [
            {
                "name": "a",
                "address": {"value": PUZZLE_A},
                "status": "solved",
                "key": {"bits": 1},
                "start_date": "2017-07-14",
                "solve_date": "2017-07-14",
            },
            {
                "name": "b",
                "address": {"value": PUZZLE_B},
                "status": "unsolved",
                "key": {"bits": 2},
            },
        ],
    }
    path = data_dir / f"{name}.jsonc"
    path.write_text("// test collection\n" + json.dumps(document))
    return path


@pytest.fixture
def config(tmp_path):
    return FlowsConfig(data_dir=str(tmp_path), max_workers=2)


@pytest.fixture
def stub():
    return StubAdapter({PUZZLE_A: solved_history(PUZZLE_A)})


@pytest.fixture
def orchestrator(config, stub):
    registry = AdapterRegistry()
    registry.register(stub)
    return Orchestrator(config, registry, CacheStore(config.cache_path))


def load_puzzles(path):
    return CollectionDocument.load(path).data["puzzles"]


# ============================================================
# PIPELINE TESTS
# ============================================================

class TestPipeline:
    """End-to-end runs over one collection."""

    @pytest.mark.asyncio
    async def test_fetch_and_process(self, orchestrator, config, tmp_path, stub):
        """Histories are cached, classified and written back."""
        path = write_document(tmp_path)

        [report] = await orchestrator.run(["b1000"], RunMode.BOTH)

        assert sorted(stub.calls) == [PUZZLE_A, PUZZLE_B]
        assert report.fetched == 2
        assert report.updated == 1
        assert report.failed == 0
        assert report.document_written
        assert orchestrator.cache.exists("b1000", PUZZLE_A)

        puzzle_a, puzzle_b = load_puzzles(path)
        assert [t["type"] for t in puzzle_a["transactions"]] == ["funding", "claim"]
        assert puzzle_a["transactions"][0] == {
            "type": "funding",
            "txid": f"fund-{PUZZLE_A}",
            "date": "2017-07-14 02:40:00",
            "amount": 1.0,
        }
        assert "transactions" not in puzzle_b

    @pytest.mark.asyncio
    async def test_second_run_changes_nothing(self, orchestrator, tmp_path, stub):
        """Cached addresses are not re-fetched and an unchanged document is not rewritten."""
        write_document(tmp_path)
        await orchestrator.run(["b1000"], RunMode.BOTH)
        stub.calls.clear()

        with patch.object(CollectionDocument, "save") as save:
            [report] = await orchestrator.run(["b1000"], RunMode.BOTH)

        assert stub.calls == []
        assert report.fetch_skipped == 2
        assert report.skipped == 0
        assert report.updated == 0
        assert not report.document_written
        save.assert_not_called()

    @pytest.mark.asyncio
    async def test_force_refetches(self, orchestrator, tmp_path, stub):
        write_document(tmp_path)
        await orchestrator.run(["b1000"], RunMode.FETCH)
        stub.calls.clear()

        [report] = await orchestrator.run(["b1000"], RunMode.FETCH, force=True)

        assert sorted(stub.calls) == [PUZZLE_A, PUZZLE_B]
        assert report.fetched == 2

    @pytest.mark.asyncio
    async def test_fetch_only_does_not_touch_document(self, orchestrator, tmp_path):
        path = write_document(tmp_path)
        before = path.read_text()

        [report] = await orchestrator.run(["b1000"], RunMode.FETCH)

        assert report.fetched == 2
        assert path.read_text() == before

    @pytest.mark.asyncio
    async def test_process_only_uses_cache(self, orchestrator, tmp_path, stub):
        """Process mode makes no requests and skips uncached puzzles."""
        path = write_document(tmp_path)
        orchestrator.cache.save("b1000", PUZZLE_A, solved_history(PUZZLE_A))

        [report] = await orchestrator.run(["b1000"], RunMode.PROCESS)

        assert stub.calls == []
        assert report.updated == 1
        assert report.skipped == 1
        assert report.fetch_skipped == 0
        assert len(load_puzzles(path)[0]["transactions"]) == 2

    @pytest.mark.asyncio
    async def test_existing_events_are_kept(self, orchestrator, tmp_path):
        """Hand-written events merge with classified ones."""
        path = write_document(tmp_path, puzzles=[{
            "address": {"value": PUZZLE_A},
            "status": "solved",
            "transactions": [
                {"type": "increase", "txid": "manual", "date": "2017-07-14 03:00:00"},
            ],
        }])

        await orchestrator.run(["b1000"], RunMode.BOTH)

        types = [t["type"] for t in load_puzzles(path)[0]["transactions"]]
        assert types == ["funding", "increase", "claim"]

    @pytest.mark.asyncio
    async def test_timestamps(self, orchestrator, tmp_path):
        """Date-only values are upgraded when requested."""
        path = write_document(tmp_path)

        await orchestrator.run(["b1000"], RunMode.BOTH, derive_times=True)

        puzzle_a = load_puzzles(path)[0]
        assert puzzle_a["start_date"] == "2017-07-14 02:40:00"
        assert puzzle_a["solve_date"] == "2017-07-14 03:40:00"
        assert puzzle_a["solve_time"] == 3600


# ============================================================
# FAILURE ISOLATION TESTS
# ============================================================

class TestFailureIsolation:
    """A failing address never aborts the batch."""

    @pytest.mark.asyncio
    async def test_fetch_error_counted(self, orchestrator, tmp_path, stub):
        write_document(tmp_path)
        stub.errors[PUZZLE_B] = RateLimitedError("Rate limited after 5 attempts", attempts=5)

        [report] = await orchestrator.run(["b1000"], RunMode.BOTH)

        assert report.fetched == 1
        assert report.failed == 1
        assert PUZZLE_B in report.errors[0]
        assert report.updated == 1
        assert not orchestrator.cache.exists("b1000", PUZZLE_B)

    @pytest.mark.asyncio
    async def test_address_timeout(self, config, tmp_path):
        """Addresses exceeding the per-address timeout are abandoned."""
        config.address_timeout_seconds = 0.01
        slow = StubAdapter({}, delay=5.0)
        registry = AdapterRegistry()
        registry.register(slow)
        orchestrator = Orchestrator(config, registry, CacheStore(config.cache_path))
        write_document(tmp_path)

        [report] = await orchestrator.run(["b1000"], RunMode.FETCH)

        assert report.failed == 2
        assert all("timed out" in e for e in report.errors)

    @pytest.mark.asyncio
    async def test_cache_write_failure(self, orchestrator, tmp_path):
        write_document(tmp_path)

        with patch("puzzle_flows.cache.os.replace", side_effect=OSError("read-only")):
            [report] = await orchestrator.run(["b1000"], RunMode.FETCH)

        assert report.failed == 2
        assert report.fetched == 0

    @pytest.mark.asyncio
    async def test_missing_address_counted(self, orchestrator, tmp_path):
        write_document(tmp_path, puzzles=[{"name": "broken"}])

        [report] = await orchestrator.run(["b1000"], RunMode.BOTH)

        assert report.failed == 2  # once per phase
        assert "broken" in report.errors[0]

    @pytest.mark.asyncio
    async def test_non_string_status_does_not_abort(self, orchestrator, tmp_path):
        """A malformed status field is treated as unsolved; its neighbours still process."""
        path = write_document(tmp_path, puzzles=[
            {"name": "odd", "address": {"value": PUZZLE_B}, "status": 5},
            {"name": "good", "address": {"value": PUZZLE_A}, "status": "solved"},
        ])
        orchestrator.cache.save("b1000", PUZZLE_A, solved_history(PUZZLE_A))
        orchestrator.cache.save("b1000", PUZZLE_B, solved_history(PUZZLE_B))

        [report] = await orchestrator.run(["b1000"], RunMode.PROCESS)

        assert report.failed == 0
        assert report.updated == 2
        odd, good = load_puzzles(path)
        assert [t["type"] for t in odd["transactions"]] == ["funding", "claim"]
        assert [t["type"] for t in good["transactions"]] == ["funding", "claim"]

    @pytest.mark.asyncio
    async def test_unexpected_process_error_counted(self, orchestrator, tmp_path):
        """An unforeseen exception for one puzzle is a failure, not a crash."""
        path = write_document(tmp_path)
        orchestrator.cache.save("b1000", PUZZLE_A, solved_history(PUZZLE_A))
        orchestrator.cache.save("b1000", PUZZLE_B, [])

        with patch(
            "puzzle_flows.orchestrator.puzzle_status",
            side_effect=[AttributeError("bad status"), "unsolved"],
        ):
            [report] = await orchestrator.run(["b1000"], RunMode.PROCESS)

        assert report.failed == 1
        assert "AttributeError" in report.errors[0]
        assert "transactions" not in load_puzzles(path)[0]

    @pytest.mark.asyncio
    async def test_unexpected_fetch_error_counted(self, orchestrator, tmp_path, stub):
        """Gathered results survive an unforeseen exception from one address."""
        write_document(tmp_path)
        stub.errors[PUZZLE_B] = AttributeError("explorer returned garbage")

        [report] = await orchestrator.run(["b1000"], RunMode.BOTH)

        assert report.fetched == 1
        assert report.failed == 1
        assert PUZZLE_B in report.errors[0]
        assert report.updated == 1
        assert orchestrator.cache.exists("b1000", PUZZLE_A)

    @pytest.mark.asyncio
    async def test_cached_address_counted_once_per_phase(self, orchestrator, tmp_path, stub):
        """A cached puzzle is a fetch skip and a process update, never a process skip."""
        write_document(tmp_path)
        orchestrator.cache.save("b1000", PUZZLE_A, solved_history(PUZZLE_A))

        [report] = await orchestrator.run(["b1000"], RunMode.BOTH)

        assert stub.calls == [PUZZLE_B]
        assert report.fetch_skipped == 1
        assert report.fetched == 1
        assert report.updated == 1
        assert report.skipped == 0

    @pytest.mark.asyncio
    async def test_unsupported_chain_skipped(self, orchestrator, tmp_path, stub):
        """Chains without an adapter are skipped, not failed."""
        write_document(tmp_path, puzzles=[
            {"chain": "ethereum", "address": "0xPuzzle"},
            {"chain": "monero", "address": "4Puzzle"},
        ])

        [report] = await orchestrator.run(["b1000"], RunMode.FETCH)

        assert stub.calls == []
        assert report.fetch_skipped == 2
        assert report.skipped == 0
        assert report.failed == 0

    @pytest.mark.asyncio
    async def test_missing_document_raises(self, orchestrator):
        with pytest.raises(DocumentError):
            await orchestrator.run(["missing"], RunMode.BOTH)


# ============================================================
# SCHEDULING TESTS
# ============================================================

class TestScheduling:
    """Tests for concurrency and filters."""

    @pytest.mark.asyncio
    async def test_worker_bound(self, config, tmp_path):
        """No more than max_workers fetches run at once."""
        addresses = [f"1Puzzle{i}" for i in range(6)]
        stub = StubAdapter({}, delay=0.01)
        registry = AdapterRegistry()
        registry.register(stub)
        orchestrator = Orchestrator(config, registry, CacheStore(config.cache_path))
        write_document(tmp_path, puzzles=[{"address": a} for a in addresses])

        [report] = await orchestrator.run(["b1000"], RunMode.FETCH)

        assert report.fetched == 6
        assert stub.max_active == 2

    @pytest.mark.asyncio
    async def test_duplicate_addresses_fetched_once(self, orchestrator, tmp_path, stub):
        write_document(tmp_path, puzzles=[
            {"name": "x", "address": PUZZLE_A},
            {"name": "y", "address": {"value": PUZZLE_A}},
        ])

        await orchestrator.run(["b1000"], RunMode.FETCH)

        assert stub.calls == [PUZZLE_A]

    @pytest.mark.asyncio
    async def test_puzzle_filter(self, orchestrator, tmp_path, stub):
        write_document(tmp_path)

        [report] = await orchestrator.run(["b1000"], RunMode.BOTH, puzzle_filter="2")

        assert stub.calls == [PUZZLE_B]
        assert report.updated == 0

    @pytest.mark.asyncio
    async def test_collection_without_authors_skipped(self, orchestrator, tmp_path, stub):
        """Author addresses are required to tell funding from claims."""
        write_document(tmp_path, authors=())

        [report] = await orchestrator.run(["b1000"], RunMode.BOTH)

        assert stub.calls == []
        assert report.to_dict()["fetched"] == 0
        assert not report.document_written

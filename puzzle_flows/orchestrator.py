"""
Orchestrator - drives fetch and process phases per collection.

Fetch:   adapter -> CacheStore.save        (concurrent, bounded)
Process: CacheStore.load -> classify -> merge_events -> document

A failing address is logged, counted and skipped. It never aborts the
batch. The collection document is rewritten only when something changed.
"""

import asyncio
import logging
from typing import Any, Optional

from puzzle_flows.cache import CacheStore
from puzzle_flows.classifier import classify
from puzzle_flows.config import FlowsConfig
from puzzle_flows.documents import (
    CollectionDocument,
    collection_path,
    existing_events,
    puzzle_address,
    puzzle_chain,
    puzzle_name,
    puzzle_status,
    set_events,
)
from puzzle_flows.exceptions import PuzzleFlowsError
from puzzle_flows.merge import merge_events
from puzzle_flows.models import DUST_THRESHOLD, Chain, CollectionReport, RunMode
from puzzle_flows.registry import AdapterRegistry
from puzzle_flows.timestamps import derive_timestamps


logger = logging.getLogger(__name__)


# Per-address failures that are counted instead of propagated
ADDRESS_ERRORS = (PuzzleFlowsError, asyncio.TimeoutError, KeyError, TypeError, ValueError)


class Orchestrator:
    """
    Runs the fetch/process pipeline over collection documents.

    Usage:
        async with setup_default_adapters(config) as registry:
            orchestrator = Orchestrator(config, registry, CacheStore(config.cache_path))
            reports = await orchestrator.run(["zden"], RunMode.BOTH)
    """

    def __init__(
        self,
        config: FlowsConfig,
        registry: AdapterRegistry,
        cache: CacheStore,
    ) -> None:
        self.config = config
        self.registry = registry
        self.cache = cache

    # ─────────────────────────────────────────────────────────────
    # Fetch
    # ─────────────────────────────────────────────────────────────

    def _fetch_targets(
        self,
        document: CollectionDocument,
        report: CollectionReport,
        force: bool,
        puzzle_filter: Optional[str],
    ) -> list[tuple[Chain, str]]:
        targets: list[tuple[Chain, str]] = []
        seen: set[tuple[Chain, str]] = set()

        for puzzle in document.iter_puzzles(puzzle_filter):
            name = puzzle_name(puzzle)
            address = puzzle_address(puzzle)
            chain = puzzle_chain(puzzle)

            if address is None:
                logger.warning(f"[{document.name}] {name}: no address, skipping")
                report.record_failure(f"{name}: missing address")
                continue
            if chain is None:
                logger.info(f"[{document.name}] {name}: unsupported chain {puzzle.get('chain')}")
                report.fetch_skipped += 1
                continue
            if not self.registry.supports(chain):
                logger.info(f"[{document.name}] {name}: no adapter for {chain.value}, skipping")
                report.fetch_skipped += 1
                continue
            if (chain, address) in seen:
                continue
            seen.add((chain, address))

            if not force and self.cache.exists(document.name, address):
                logger.debug(f"[{document.name}] {address}: cached, skipping fetch")
                report.fetch_skipped += 1
                continue

            targets.append((chain, address))

        return targets

    async def _fetch_address(
        self,
        collection: str,
        chain: Chain,
        address: str,
        semaphore: asyncio.Semaphore,
    ) -> int:
        adapter = self.registry.get(chain)
        async with semaphore:
            logger.info(f"[{collection}] Fetching {address} ({chain.value})")
            fetch = adapter.fetch_transactions(address)
            if self.config.address_timeout_seconds:
                transactions = await asyncio.wait_for(
                    fetch, timeout=self.config.address_timeout_seconds
                )
            else:
                transactions = await fetch
            self.cache.save(collection, address, transactions)
            return len(transactions)

    async def fetch_collection(
        self,
        document: CollectionDocument,
        force: bool = False,
        puzzle_filter: Optional[str] = None,
        report: Optional[CollectionReport] = None,
    ) -> CollectionReport:
        """
        Fetch and cache every puzzle address of a collection.

        Args:
            document: Loaded collection document
            force: Re-fetch addresses that are already cached
            puzzle_filter: Only puzzles whose name or bits match
            report: Report to accumulate into

        Returns:
            The collection report
        """
        report = report or CollectionReport(collection=document.name)
        targets = self._fetch_targets(document, report, force, puzzle_filter)
        if not targets:
            return report

        semaphore = asyncio.Semaphore(self.config.max_workers)
        results = await asyncio.gather(
            *(
                self._fetch_address(document.name, chain, address, semaphore)
                for chain, address in targets
            ),
            return_exceptions=True,
        )

        for (chain, address), result in zip(targets, results):
            if isinstance(result, int):
                report.fetched += 1
            elif isinstance(result, asyncio.TimeoutError):
                logger.warning(f"[{document.name}] {address}: timed out, abandoned")
                report.record_failure(f"{address}: timed out")
            elif isinstance(result, ADDRESS_ERRORS):
                logger.warning(f"[{document.name}] {address}: {result}")
                report.record_failure(f"{address}: {result}")
            elif isinstance(result, Exception):
                logger.error(
                    f"[{document.name}] {address}: unexpected {type(result).__name__}: {result}",
                    exc_info=result,
                )
                report.record_failure(f"{address}: {type(result).__name__}: {result}")
            else:
                raise result

        return report

    # ─────────────────────────────────────────────────────────────
    # Process
    # ─────────────────────────────────────────────────────────────

    def _dust_threshold(self, chain: Chain) -> Optional[int]:
        chain_config = self.config.get_chain_config(chain)
        if chain_config is None:
            return DUST_THRESHOLD
        return chain_config.dust_threshold

    def process_puzzle(
        self,
        collection: str,
        puzzle: dict[str, Any],
        author_addresses: set[str],
        derive_times: bool = False,
    ) -> Optional[bool]:
        """
        Classify and merge one puzzle from its cache entry.

        Returns:
            True if the puzzle changed, False if not, None if it was skipped
        """
        name = puzzle_name(puzzle)
        address = puzzle_address(puzzle)
        chain = puzzle_chain(puzzle)

        if address is None:
            raise ValueError(f"{name}: missing address")
        if chain is None:
            logger.info(f"[{collection}] {name}: unsupported chain {puzzle.get('chain')}")
            return None

        transactions = self.cache.load(collection, address)
        changed = False

        if transactions is not None:
            fresh = classify(
                address,
                transactions,
                author_addresses,
                puzzle_status(puzzle),
                chain=chain,
                dust_threshold=self._dust_threshold(chain),
            )
            existing = existing_events(puzzle)
            merged = merge_events(existing, fresh)
            if merged and merged != existing:
                set_events(puzzle, merged)
                logger.info(f"[{collection}] {name}: {len(existing)} -> {len(merged)} events")
                changed = True
        else:
            logger.debug(f"[{collection}] {name}: no cache entry for {address}")

        if derive_times and derive_timestamps(puzzle, transactions):
            changed = True

        if transactions is None and not changed:
            return None
        return changed

    def process_collection(
        self,
        document: CollectionDocument,
        puzzle_filter: Optional[str] = None,
        derive_times: bool = False,
        report: Optional[CollectionReport] = None,
    ) -> CollectionReport:
        """Reconcile every cached puzzle of a collection into its document."""
        report = report or CollectionReport(collection=document.name)
        authors = document.author_addresses()

        for puzzle in document.iter_puzzles(puzzle_filter):
            try:
                outcome = self.process_puzzle(document.name, puzzle, authors, derive_times)
            except ADDRESS_ERRORS as e:
                logger.warning(f"[{document.name}] {puzzle_name(puzzle)}: {e}")
                report.record_failure(f"{puzzle_name(puzzle)}: {e}")
                continue
            except Exception as e:
                logger.error(
                    f"[{document.name}] {puzzle_name(puzzle)}: unexpected {type(e).__name__}: {e}",
                    exc_info=True,
                )
                report.record_failure(f"{puzzle_name(puzzle)}: {type(e).__name__}: {e}")
                continue

            if outcome is None:
                report.skipped += 1
            elif outcome:
                report.updated += 1

        return report

    # ─────────────────────────────────────────────────────────────
    # Run
    # ─────────────────────────────────────────────────────────────

    async def run_collection(
        self,
        document: CollectionDocument,
        mode: RunMode = RunMode.BOTH,
        force: bool = False,
        puzzle_filter: Optional[str] = None,
        derive_times: bool = False,
    ) -> CollectionReport:
        """Run the requested phases for one loaded collection."""
        report = CollectionReport(collection=document.name)

        if not document.author_addresses():
            logger.warning(f"[{document.name}] No author addresses, skipping collection")
            return report

        if mode.fetches:
            await self.fetch_collection(document, force, puzzle_filter, report)

        if mode.processes:
            self.process_collection(document, puzzle_filter, derive_times, report)
            if report.updated:
                document.save()
                report.document_written = True

        logger.info(
            f"[{document.name}] fetched={report.fetched} fetch_skipped={report.fetch_skipped} "
            f"updated={report.updated} skipped={report.skipped} failed={report.failed}"
        )
        return report

    async def run(
        self,
        collections: list[str],
        mode: RunMode = RunMode.BOTH,
        force: bool = False,
        puzzle_filter: Optional[str] = None,
        derive_times: bool = False,
    ) -> list[CollectionReport]:
        """
        Run the pipeline over named collections.

        Raises:
            DocumentError: If a collection document cannot be read or written
        """
        reports = []
        for collection in collections:
            document = CollectionDocument.load(collection_path(self.config.data_path, collection))
            reports.append(await self.run_collection(
                document,
                mode=mode,
                force=force,
                puzzle_filter=puzzle_filter,
                derive_times=derive_times,
            ))
        return reports

"""
Puzzle Flows - CLI.

============================================================
RESPONSIBILITY
============================================================
Command-line entry point for transaction generation.

- Fetches explorer history into the cache
- Classifies cached history into fund-flow events
- Writes changed events back into collection documents

============================================================
USAGE
============================================================
python -m puzzle_flows                       # all collections, fetch + process
python -m puzzle_flows zden b1000 --fetch    # fetch only
python -m puzzle_flows b1000 --puzzle 66 --force
python -m puzzle_flows --process --timestamps

============================================================
"""

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from dotenv import load_dotenv

from puzzle_flows.cache import CacheStore
from puzzle_flows.config import FlowsConfig, set_config
from puzzle_flows.documents import discover_collections
from puzzle_flows.exceptions import ConfigurationError, DocumentError
from puzzle_flows.models import CollectionReport, RunMode
from puzzle_flows.orchestrator import Orchestrator
from puzzle_flows.registry import setup_default_adapters


logger = logging.getLogger(__name__)


LOG_FORMAT = "%(asctime)s | %(levelname)-5s | %(name)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


# ============================================================
# CLI ARGUMENT PARSER
# ============================================================

def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="puzzle-flows",
        description="Reconstruct fund-flow events for puzzle addresses",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Phases:
  --fetch    - Download explorer history into the cache only
  --process  - Classify cached history and update documents only
  (neither)  - Fetch, then process

Examples:
  %(prog)s                              # Every collection in the data dir
  %(prog)s zden --puzzle 66 --force     # Re-fetch one puzzle
  %(prog)s --process --timestamps       # Offline, also derive dates
        """
    )

    parser.add_argument(
        "collections",
        nargs="*",
        metavar="COLLECTION",
        help="Collection names (default: every *.jsonc in the data dir)",
    )

    # --------------------------------------------------------
    # Phase Selection
    # --------------------------------------------------------
    phase_group = parser.add_argument_group("Phase Options")
    phases = phase_group.add_mutually_exclusive_group()

    phases.add_argument(
        "--fetch",
        action="store_true",
        help="Fetch and cache transactions only",
    )

    phases.add_argument(
        "--process",
        action="store_true",
        help="Process cached transactions only (no network)",
    )

    phase_group.add_argument(
        "--force",
        action="store_true",
        help="Re-fetch addresses that are already cached",
    )

    phase_group.add_argument(
        "--puzzle",
        type=str,
        metavar="NAME_OR_BITS",
        help="Only the puzzle with this name or key bit length",
    )

    phase_group.add_argument(
        "--timestamps",
        action="store_true",
        help="Derive start_date / solve_date / solve_time while processing",
    )

    # --------------------------------------------------------
    # Configuration
    # --------------------------------------------------------
    config_group = parser.add_argument_group("Configuration")

    config_group.add_argument(
        "--config",
        type=str,
        metavar="FILE.yaml",
        help="YAML configuration file",
    )

    config_group.add_argument(
        "--data-dir",
        type=str,
        help="Directory holding collection documents",
    )

    config_group.add_argument(
        "--cache-dir",
        type=str,
        help="Cache directory (default: <data-dir>/cache)",
    )

    config_group.add_argument(
        "--workers",
        type=int,
        metavar="N",
        help="Concurrent address fetches",
    )

    # --------------------------------------------------------
    # Logging
    # --------------------------------------------------------
    logging_group = parser.add_argument_group("Logging")

    logging_group.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level (default: INFO)",
    )

    return parser


def setup_logging(level: str) -> None:
    """Configure root logging for command-line runs."""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
    )


def build_config(args: argparse.Namespace) -> FlowsConfig:
    """Build configuration: environment, then YAML, then CLI flags."""
    if args.config:
        config = FlowsConfig.from_yaml(args.config)
    else:
        config = FlowsConfig.from_env()

    if args.data_dir:
        config.data_dir = args.data_dir
    if args.cache_dir:
        config.cache_dir = args.cache_dir
    if args.workers is not None:
        if args.workers < 1:
            raise ConfigurationError("--workers must be >= 1", config_key="max_workers")
        config.max_workers = args.workers

    return config


def get_mode(args: argparse.Namespace) -> RunMode:
    if args.fetch:
        return RunMode.FETCH
    if args.process:
        return RunMode.PROCESS
    return RunMode.BOTH


def print_summary(reports: List[CollectionReport]) -> None:
    """Print per-collection results."""
    print()
    print("=" * 72)
    print(f"  {'COLLECTION':<20} {'FETCHED':>8} {'FETCH-SKIP':>10} {'UPDATED':>8} {'SKIPPED':>8} {'FAILED':>7}")
    print("=" * 72)
    for report in reports:
        print(
            f"  {report.collection:<20} {report.fetched:>8} {report.fetch_skipped:>10} {report.updated:>8} "
            f"{report.skipped:>8} {report.failed:>7}"
        )
        for error in report.errors:
            print(f"      ! {error}")
    print("=" * 72)
    print()


# ============================================================
# MAIN ENTRY POINT
# ============================================================

async def async_main(args: argparse.Namespace, config: FlowsConfig) -> int:
    """
    Async main entry point.

    Returns:
        Exit code
    """
    collections = args.collections or config.default_collections or discover_collections(config.data_path)
    if not collections:
        logger.warning(f"No collections found in {config.data_path}")
        return 0

    mode = get_mode(args)
    cache = CacheStore(config.cache_path)

    async with setup_default_adapters(config) as registry:
        orchestrator = Orchestrator(config, registry, cache)
        try:
            reports = await orchestrator.run(
                collections,
                mode=mode,
                force=args.force,
                puzzle_filter=args.puzzle,
                derive_times=args.timestamps,
            )
        except DocumentError as e:
            logger.error(f"{e} [path={e.path}]")
            return 1

    print_summary(reports)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Args:
        argv: Command line arguments (default: sys.argv[1:])

    Returns:
        Exit code
    """
    load_dotenv()

    parser = create_parser()
    args = parser.parse_args(argv)
    setup_logging(args.log_level)

    try:
        config = build_config(args)
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    set_config(config)

    try:
        return asyncio.run(async_main(args, config))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130


# ============================================================
# MODULE EXECUTION
# ============================================================

if __name__ == "__main__":
    sys.exit(main())

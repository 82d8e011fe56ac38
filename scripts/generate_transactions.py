"""
Generate transaction events for puzzle collections.

Runs from the repository root:
    python scripts/generate_transactions.py                 # all collections
    python scripts/generate_transactions.py zden --fetch
    python scripts/generate_transactions.py --process --timestamps

Set ETHERSCAN_API_KEY (or put it in .env) to include Ethereum puzzles.
"""

import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from puzzle_flows.cli import main


if __name__ == "__main__":
    sys.exit(main())

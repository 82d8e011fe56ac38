"""Allow running as: python -m puzzle_flows"""

import sys

from puzzle_flows.cli import main


if __name__ == "__main__":
    sys.exit(main())

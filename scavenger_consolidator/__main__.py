"""
Usage:
    python -m scavenger_consolidator addresses
    python -m scavenger_consolidator proofs --target-addr <addr>
    python -m scavenger_consolidator consolidate --destination-addr <addr>
"""

import sys

from .cli import main

if __name__ == "__main__":
    sys.exit(main())

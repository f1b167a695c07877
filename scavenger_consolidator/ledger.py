"""Read-only access to the local receipts log and the derived address file."""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import List, Union

from .errors import NotFoundError
from .models import DerivedAddress, Receipt


class ReceiptsLedger:
    """Append-only JSONL log of proof-of-work submissions, one receipt per line."""

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)

    def read_receipts(self) -> List[Receipt]:
        if not self.path.exists():
            return []
        receipts: List[Receipt] = []
        with self.path.open(encoding="utf-8") as f:
            for line_no, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    rec = json.loads(line)
                except json.JSONDecodeError:
                    print(f"WARNING: skipping receipts line {line_no}: not valid JSON", file=sys.stderr)
                    continue
                if not isinstance(rec, dict):
                    print(f"WARNING: skipping receipts line {line_no}: not an object", file=sys.stderr)
                    continue
                receipts.append(Receipt.from_dict(rec))
        return receipts


def load_derived_addresses(path: Union[str, Path]) -> List[DerivedAddress]:
    path = Path(path)
    if not path.exists():
        raise NotFoundError("No wallet addresses found")
    with path.open(encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, list):
        raise RuntimeError(f"{path} must hold a JSON array of derived addresses")
    return [DerivedAddress.from_dict(rec) for rec in data]

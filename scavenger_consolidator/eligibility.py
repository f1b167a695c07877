from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Sequence

from .errors import ValidationError
from .models import DerivedAddress, DonorCandidate, Receipt


VALID_ADDRESS_PREFIXES = ("addr1", "tnight1")


def is_valid_address(addr: Any) -> bool:
    return isinstance(addr, str) and addr.startswith(VALID_ADDRESS_PREFIXES) and len(addr) > 20


def count_user_solutions(receipts: Iterable[Receipt]) -> Dict[str, int]:
    """Map address -> number of receipts that are not dev fee. Absent means zero."""
    counts: Dict[str, int] = {}
    for r in receipts:
        if r.address and not r.is_dev_fee:
            counts[r.address] = counts.get(r.address, 0) + 1
    return counts


def normalize_indexes(raw: Optional[Sequence[Any]], addresses: Sequence[DerivedAddress]) -> List[int]:
    """
    Requested indexes as non-negative ints; every derived index when none were
    given. Entries that are not non-negative integers are a request error.
    """
    if not raw:
        return [a.index for a in addresses]
    indexes: List[int] = []
    rejected: List[Any] = []
    for n in raw:
        value = None
        if not isinstance(n, bool):
            try:
                value = float(n)
            except (TypeError, ValueError, OverflowError):
                value = None
        if value is None or not value.is_integer() or value < 0:
            rejected.append(n)
            continue
        indexes.append(int(value))
    if rejected:
        raise ValidationError(f"Invalid address indexes: {', '.join(str(n) for n in rejected)}")
    return indexes


def check_indexes(indexes: Sequence[int], addresses: Sequence[DerivedAddress]) -> None:
    available = {a.index for a in addresses}
    invalid = [i for i in indexes if i not in available]
    if invalid:
        raise ValidationError(f"Invalid address indexes: {', '.join(str(i) for i in invalid)}")


def resolve_donors(
    addresses: Sequence[DerivedAddress],
    counts: Dict[str, int],
    indexes: Sequence[int],
    exclude: Optional[str] = None,
) -> List[DonorCandidate]:
    """
    Donors among the requested indexes: known to the wallet, with at least one
    user solution, and (when exclude is given) not the excluded recipient.
    Order follows the requested indexes.
    """
    by_index = {a.index: a for a in addresses}
    donors: List[DonorCandidate] = []
    for i in indexes:
        addr = by_index.get(i)
        if addr is None:
            continue
        if exclude is not None and addr.bech32 == exclude:
            continue
        total = counts.get(addr.bech32, 0)
        if total <= 0:
            continue
        donors.append(DonorCandidate(index=addr.index, bech32=addr.bech32, total_user_solutions=total))
    return donors

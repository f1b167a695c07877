from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .config import DEFAULT_BACKOFF_SECONDS, DEFAULT_MAX_RETRIES


# ------------------------ wallet & ledger records ------------------------

@dataclass(frozen=True)
class DerivedAddress:
    index: int
    bech32: str
    public_key_hex: str
    registered: bool = False

    @classmethod
    def from_dict(cls, rec: Dict[str, Any]) -> "DerivedAddress":
        return cls(
            index=int(rec["index"]),
            bech32=str(rec["bech32"]),
            public_key_hex=str(rec.get("publicKeyHex") or ""),
            registered=bool(rec.get("registered")),
        )


@dataclass(frozen=True)
class Receipt:
    address: str
    is_dev_fee: bool
    raw: Dict[str, Any] = field(default_factory=dict, compare=False)

    @classmethod
    def from_dict(cls, rec: Dict[str, Any]) -> "Receipt":
        return cls(
            address=str(rec.get("address") or ""),
            is_dev_fee=bool(rec.get("isDevFee")),
            raw=dict(rec),
        )


@dataclass(frozen=True)
class DonorCandidate:
    index: int
    bech32: str
    total_user_solutions: int


# ------------------------ requests ------------------------

def _coerce_indexes(raw: Any) -> Optional[List[Any]]:
    if isinstance(raw, (list, tuple)) and len(raw) > 0:
        return list(raw)
    return None


@dataclass
class ConsolidationRequest:
    password: str
    recipient_address: str
    address_indexes: Optional[List[Any]] = None
    dry_run: bool = False
    max_retries: int = DEFAULT_MAX_RETRIES
    initial_backoff_seconds: float = DEFAULT_BACKOFF_SECONDS

    @classmethod
    def from_payload(cls, body: Dict[str, Any]) -> "ConsolidationRequest":
        """Build from a camelCase request body, applying defaults and clamps."""
        retries = body.get("maxRetries")
        if isinstance(retries, int) and not isinstance(retries, bool):
            max_retries = max(0, retries)
        else:
            max_retries = DEFAULT_MAX_RETRIES

        backoff = body.get("initialBackoffSeconds")
        if isinstance(backoff, (int, float)) and not isinstance(backoff, bool) and math.isfinite(backoff):
            initial_backoff = max(1, backoff)
        else:
            initial_backoff = DEFAULT_BACKOFF_SECONDS

        return cls(
            password=body.get("password"),
            recipient_address=body.get("recipientAddress"),
            address_indexes=_coerce_indexes(body.get("addressIndexes")),
            dry_run=body.get("dryRun") is True,
            max_retries=max_retries,
            initial_backoff_seconds=initial_backoff,
        )


@dataclass
class ProofRequest:
    password: str
    challenge: Optional[str] = None
    target_address: Optional[str] = None
    address_indexes: Optional[List[Any]] = None
    include_public_key: bool = True

    @classmethod
    def from_payload(cls, body: Dict[str, Any]) -> "ProofRequest":
        return cls(
            password=body.get("password"),
            challenge=body.get("challenge"),
            target_address=body.get("targetAddress"),
            address_indexes=_coerce_indexes(body.get("addressIndexes")),
            include_public_key=body.get("includePublicKey") is not False,
        )


# ------------------------ results ------------------------

@dataclass
class ProofResult:
    index: int
    donor: str
    total_user_solutions: int
    signed: bool
    signature: Optional[str] = None
    curl: Optional[str] = None
    status: Optional[int] = None
    response: Any = None
    attempts: int = 0

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "index": self.index,
            "donor": self.donor,
            "totalUserSolutions": self.total_user_solutions,
            "signed": self.signed,
        }
        if self.signature is not None:
            out["signature"] = self.signature
        if self.curl is not None:
            out["curl"] = self.curl
        if self.status is not None:
            out["status"] = self.status
        if self.response is not None:
            out["response"] = self.response
        if self.attempts:
            out["attempts"] = self.attempts
        return out

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional, Tuple

from .errors import ValidationError
from .wallet import WalletCapability


DONATE_MESSAGE_PREFIX = "Assign accumulated Scavenger rights to: "
CHALLENGE_PREFIX = "scavenger-consolidate"


def donate_message(recipient: str) -> str:
    return f"{DONATE_MESSAGE_PREFIX}{recipient}"


def iso_timestamp(now: datetime) -> str:
    """UTC timestamp with millisecond precision and a Z suffix."""
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc).replace(tzinfo=None)
    return now.isoformat(timespec="milliseconds") + "Z"


def default_challenge(target: str, now: datetime) -> str:
    # Embeds wall-clock time, so two calls never produce the same challenge.
    return f"{CHALLENGE_PREFIX}|target={target}|ts={iso_timestamp(now)}"


def resolve_challenge(challenge: Optional[str], target: Optional[str], now: datetime) -> str:
    if isinstance(challenge, str) and challenge.strip():
        return challenge.strip()
    if isinstance(target, str) and target.strip():
        return default_challenge(target.strip(), now)
    raise ValidationError("Provide challenge or targetAddress to build one")


def sign_for_donor(wallet: WalletCapability, index: int, message: str) -> Tuple[Optional[str], Optional[str]]:
    """Return (signature, None) on success or (None, error message) on any signing failure."""
    try:
        return wallet.sign_message(index, message), None
    except Exception as e:
        return None, str(e) or "Signing failed"

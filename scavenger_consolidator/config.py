from __future__ import annotations

import argparse
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


DEFAULT_API_URL = "https://scavenger.prod.gd.midnighttge.io"
DEFAULT_UA = "curl/8.16.0"
DEFAULT_TIMEOUT = 60
DEFAULT_MAX_RETRIES = 3
DEFAULT_BACKOFF_SECONDS = 20
DEFAULT_ADDRESSES_FILE = "secure/derived-addresses.json"
DEFAULT_RECEIPTS_FILE = "storage/receipts.jsonl"
DEFAULT_OUT_DIR = "consolidate-logs"
DEFAULT_WORKERS = 1


@dataclass
class Settings:
    """Everything a command needs besides the request itself."""

    api_url: str = DEFAULT_API_URL
    user_agent: str = DEFAULT_UA
    timeout: int = DEFAULT_TIMEOUT
    addresses_file: Path = Path(DEFAULT_ADDRESSES_FILE)
    receipts_file: Path = Path(DEFAULT_RECEIPTS_FILE)
    out_dir: Path = Path(DEFAULT_OUT_DIR)
    account: int = 0
    workers: int = DEFAULT_WORKERS
    deadline: Optional[float] = None

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> "Settings":
        return cls(
            api_url=args.api_url,
            user_agent=args.user_agent,
            timeout=args.timeout,
            addresses_file=Path(args.addresses_file),
            receipts_file=Path(args.receipts_file),
            out_dir=Path(getattr(args, "out_dir", DEFAULT_OUT_DIR)),
            account=args.account,
            workers=max(1, getattr(args, "workers", DEFAULT_WORKERS)),
            deadline=getattr(args, "deadline", None),
        )

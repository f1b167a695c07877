"""
Command line entry point.

  scavenger-consolidate addresses
  scavenger-consolidate proofs --target-addr addr1... [--challenge TEXT]
  scavenger-consolidate consolidate --destination-addr addr1... [--dry-run]

The wallet mnemonic is read from --mnemonic or prompted for. Passing it on
the command line exposes it in shell history and process lists.

A consolidate run writes, inside <out-dir>/run-<timestamp>/:
- log.jsonl        : one JSON record per donor
- summary.csv      : one row per donor
- signatures.csv   : (index, address, destination, signature_hex)
- job_summary.txt  : human-readable summary
"""

from __future__ import annotations

import argparse
import csv
import getpass
import json
import sys
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from .config import (
    DEFAULT_ADDRESSES_FILE,
    DEFAULT_API_URL,
    DEFAULT_BACKOFF_SECONDS,
    DEFAULT_MAX_RETRIES,
    DEFAULT_OUT_DIR,
    DEFAULT_RECEIPTS_FILE,
    DEFAULT_TIMEOUT,
    DEFAULT_UA,
    DEFAULT_WORKERS,
    Settings,
)
from .ledger import ReceiptsLedger, load_derived_addresses
from .models import ConsolidationRequest, ProofRequest
from .orchestrator import Consolidator
from .submit import SubmissionClient, classify_status
from .wallet import CardanoSignerWallet


# ------------------------ argument parsing ------------------------

def parse_index_list(value: str) -> List[int]:
    out: List[int] = []
    for part in value.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            out.append(int(part))
        except ValueError:
            raise argparse.ArgumentTypeError(f"non-integer index '{part}'") from None
    return out


def add_common(ap: argparse.ArgumentParser) -> None:
    ap.add_argument("--addresses-file", default=DEFAULT_ADDRESSES_FILE,
                    help=f"Derived addresses JSON (default: {DEFAULT_ADDRESSES_FILE})")
    ap.add_argument("--receipts-file", default=DEFAULT_RECEIPTS_FILE,
                    help=f"Receipts JSONL log (default: {DEFAULT_RECEIPTS_FILE})")
    ap.add_argument("--account", type=int, default=0, help="HD account index (default: 0)")
    ap.add_argument("--api-url", default=DEFAULT_API_URL, help="Scavenger API base URL")
    ap.add_argument("--user-agent", default=DEFAULT_UA, help="User-Agent header for HTTP requests")
    ap.add_argument("--timeout", type=int, default=DEFAULT_TIMEOUT, help="HTTP timeout in seconds (default: 60)")


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="scavenger-consolidate",
        description="Consolidate Scavenger solution credit from derived addresses onto one recipient.",
    )
    sub = ap.add_subparsers(dest="command", required=True)

    p = sub.add_parser("addresses", help="List derived addresses with their user solution counts")
    add_common(p)
    p.add_argument("--json", action="store_true", help="Print the raw JSON response")

    p = sub.add_parser("proofs", help="Sign ownership proofs for donor addresses")
    add_common(p)
    p.add_argument("--mnemonic", help="Wallet mnemonic (prompted for when omitted)")
    p.add_argument("--challenge", help="Exact challenge text to sign (preferred)")
    p.add_argument("--target-addr", help="Build a timestamped default challenge for this address")
    p.add_argument("--indexes", type=parse_index_list, help="Comma separated address indexes (default: all)")
    p.add_argument("--no-public-key", action="store_true", help="Leave publicKeyHex out of each proof")
    p.add_argument("--workers", type=int, default=DEFAULT_WORKERS, help="Parallel signing workers (default: 1)")
    p.add_argument("--out", help="Also write the JSON response to this file")

    p = sub.add_parser("consolidate", help="Assign donor rights to a recipient via donate_to")
    add_common(p)
    p.add_argument("--mnemonic", help="Wallet mnemonic (prompted for when omitted)")
    p.add_argument("--destination-addr", required=True, help="Recipient addr1... / tnight1...")
    p.add_argument("--indexes", type=parse_index_list, help="Comma separated donor indexes (default: all)")
    p.add_argument("--dry-run", action="store_true",
                   help="Sign and write curl commands, but DO NOT call the API")
    p.add_argument("--max-retries", type=int, default=DEFAULT_MAX_RETRIES,
                   help="Retries per donor on 429/408/network errors (default: 3)")
    p.add_argument("--backoff", type=float, default=DEFAULT_BACKOFF_SECONDS,
                   help="Seconds before the first retry, doubled after each (default: 20)")
    p.add_argument("--workers", type=int, default=DEFAULT_WORKERS,
                   help="Donors processed in parallel (default: 1)")
    p.add_argument("--deadline", type=float,
                   help="Give up retrying a donor once this many seconds have passed")
    p.add_argument("--out-dir", default=DEFAULT_OUT_DIR,
                   help="Base output directory; a timestamped run subfolder will be created inside")
    p.add_argument("--log-file", help="Custom JSONL log path (overrides run-folder log.jsonl)")

    return ap


# ------------------------ wiring ------------------------

def read_password(args: argparse.Namespace) -> str:
    if args.mnemonic:
        return args.mnemonic
    return getpass.getpass("Wallet mnemonic: ")


def make_consolidator(settings: Settings) -> Consolidator:
    client = SubmissionClient(settings.api_url, user_agent=settings.user_agent, timeout=settings.timeout)
    return Consolidator(
        lambda: CardanoSignerWallet(settings.addresses_file, account=settings.account),
        ReceiptsLedger(settings.receipts_file),
        client,
        address_source=lambda: load_derived_addresses(settings.addresses_file),
        max_workers=settings.workers,
        deadline=settings.deadline,
    )


def report_failure(response: Dict[str, Any]) -> int:
    print(f"ERROR: {response.get('error')}", file=sys.stderr)
    return 2 if response.get("status", 500) < 500 else 1


# ------------------------ commands ------------------------

def cmd_addresses(args: argparse.Namespace, consolidator: Consolidator) -> int:
    response = consolidator.handle(consolidator.list_addresses)
    if not response["success"]:
        return report_failure(response)
    if args.json:
        print(json.dumps(response, indent=2))
        return 0

    print(f"{'index':>5}  {'solutions':>9}  {'reg':>3}  address")
    for row in response["addresses"]:
        reg = "yes" if row["registered"] else "no"
        print(f"{row['index']:>5}  {row['totalUserSolutions']:>9}  {reg:>3}  {row['address']}")
    print()
    print(f"donors: {len(response['donors'])}")
    suggested = response["suggestedRecipient"]
    if suggested:
        print(f"suggested recipient: {suggested['address']} ({suggested['totalUserSolutions']} solutions)")
    return 0


def cmd_proofs(args: argparse.Namespace, consolidator: Consolidator) -> int:
    request = ProofRequest(
        password=read_password(args),
        challenge=args.challenge,
        target_address=args.target_addr,
        address_indexes=args.indexes,
        include_public_key=not args.no_public_key,
    )
    response = consolidator.handle(consolidator.resolve_proofs, request)
    if not response["success"]:
        return report_failure(response)

    text = json.dumps(response, indent=2)
    print(text)
    if args.out:
        Path(args.out).write_text(text + "\n", encoding="utf-8")
        print(f"\nWrote:\n  {args.out}", file=sys.stderr)
    failed = [p for p in response["proofs"] if p.get("signed") is False]
    for p in failed:
        print(f"WARNING: index {p['index']} not signed: {p['response']['error']}", file=sys.stderr)
    return 0


def status_class_for(result: Dict[str, Any], dry_run: bool) -> str:
    if not result["signed"]:
        return "sign_error"
    if dry_run:
        return "dry_run"
    return classify_status(result.get("status", 0))


def human_bucket(status_class: str) -> str:
    """
    Bucket results for the job summary:
      assigned : success or already_assigned
      dry_run  : signed, not submitted
      failed   : everything else
    """
    if status_class in {"success", "already_assigned"}:
        return "assigned"
    if status_class == "dry_run":
        return "dry_run"
    return "failed"


def donation_details(response: Any) -> Dict[str, Any]:
    donation_id = None
    solutions = None
    if isinstance(response, dict):
        donation_id = response.get("donation_id") or response.get("donationId")
        val = response.get("solutions_consolidated") or response.get("Solutions_consolidated")
        try:
            solutions = int(val) if val is not None else None
        except (TypeError, ValueError):
            solutions = None
    return {"donation_id": donation_id, "solutions_consolidated": solutions}


def cmd_consolidate(args: argparse.Namespace, consolidator: Consolidator) -> int:
    dest_addr = args.destination_addr.strip()
    request = ConsolidationRequest.from_payload({
        "password": read_password(args),
        "recipientAddress": dest_addr,
        "addressIndexes": args.indexes,
        "dryRun": args.dry_run,
        "maxRetries": args.max_retries,
        "initialBackoffSeconds": args.backoff,
    })

    print("Scavenger Consolidator")
    print(f"API URL       : {args.api_url}")
    print(f"Account       : {args.account} (ROLE=0 external)")
    print(f"Destination   : {dest_addr}")
    print(f"Mode          : {'DRY-RUN' if request.dry_run else 'LIVE'}")
    print()

    response = consolidator.handle(consolidator.consolidate, request)
    if not response["success"]:
        return report_failure(response)

    base_dir = Path(args.out_dir)
    run_ts = time.strftime("%Y%m%dT%H%M%SZ", time.gmtime())
    run_dir = base_dir / f"run-{run_ts}"
    run_dir.mkdir(parents=True, exist_ok=True)
    log_path = Path(args.log_file) if args.log_file else (run_dir / "log.jsonl")
    summary_csv_path = run_dir / "summary.csv"
    signatures_csv_path = run_dir / "signatures.csv"
    job_summary_path = run_dir / "job_summary.txt"

    records: List[Dict[str, Any]] = []
    for r in response["results"]:
        status_class = status_class_for(r, request.dry_run)
        record = {
            "index": r["index"],
            "address": r["donor"],
            "destination": dest_addr,
            "total_user_solutions": r["totalUserSolutions"],
            "http_code": r.get("status", 0),
            "status_class": status_class,
            "attempts": r.get("attempts", 0),
            "signature_hex": r.get("signature"),
            "curl": r.get("curl"),
            "response": r.get("response"),
        }
        record.update(donation_details(r.get("response")))
        records.append(record)

        print("-" * 72)
        print(f"index={record['index']} solutions={record['total_user_solutions']}")
        print(f"  donor: {record['address']}")
        if status_class == "sign_error":
            print(f"  ERROR during sign: {r['response'].get('error')}")
        elif status_class == "dry_run":
            print("  dry-run: not calling API; curl command logged.")
        else:
            print(f"  HTTP status: {record['http_code']} -> {status_class} (attempts: {record['attempts']})")
            if record["donation_id"]:
                print(f"  donation_id: {record['donation_id']}")
            if record["solutions_consolidated"] is not None:
                print(f"  solutions_consolidated: {record['solutions_consolidated']}")

    log_path.parent.mkdir(parents=True, exist_ok=True)
    with log_path.open("a", encoding="utf-8") as log_f:
        for record in records:
            log_f.write(json.dumps(record) + "\n")

    with signatures_csv_path.open("w", newline="", encoding="utf-8") as f:
        w = csv.writer(f)
        w.writerow(["index", "address", "destination", "signature_hex"])
        for record in records:
            if record["signature_hex"]:
                w.writerow([record["index"], record["address"], dest_addr, record["signature_hex"]])

    with summary_csv_path.open("w", newline="", encoding="utf-8") as f:
        w = csv.writer(f)
        w.writerow(["index", "address_from", "address_to", "http_code", "status_class",
                    "attempts", "donation_id", "solutions_consolidated"])
        for record in records:
            solutions_val = record["solutions_consolidated"]
            w.writerow([
                record["index"],
                record["address"],
                dest_addr,
                record["http_code"],
                record["status_class"],
                record["attempts"],
                record["donation_id"] or "",
                solutions_val if solutions_val is not None else "",
            ])

    counts = {"assigned": 0, "dry_run": 0, "failed": 0}
    lines: List[str] = []
    lines.append("=== Scavenger Consolidation Job Summary ===")
    lines.append(f"run_folder     : {run_dir.name}")
    lines.append(f"destination    : {dest_addr}")
    lines.append(f"mode           : {'DRY-RUN' if request.dry_run else 'LIVE'}")
    lines.append(f"total_donors   : {response['donors']}")
    lines.append("")
    lines.append("Results:")
    for record in records:
        bucket = human_bucket(record["status_class"])
        counts[bucket] += 1
        if bucket == "assigned":
            lines.append(f"- {record['address']}: assigned -> {dest_addr}")
        elif bucket == "dry_run":
            lines.append(f"- {record['address']}: signed (dry run)")
        else:
            note = record["status_class"].replace("_", " ")
            lines.append(f"- {record['address']}: failed ({note})")
    lines.append("")
    lines.append(f"assigned   : {counts['assigned']}")
    lines.append(f"dry_run    : {counts['dry_run']}")
    lines.append(f"failed     : {counts['failed']}")
    lines.append("")
    lines.append("Artifacts:")
    lines.append(f"- log.jsonl        : {log_path}")
    lines.append(f"- summary.csv      : {summary_csv_path}")
    lines.append(f"- signatures.csv   : {signatures_csv_path}")

    with job_summary_path.open("w", encoding="utf-8") as f:
        f.write("\n".join(lines))

    print()
    print(response["note"])
    print("\nWrote:")
    print(f"  {log_path}")
    print(f"  {summary_csv_path}")
    print(f"  {signatures_csv_path}")
    print(f"  {job_summary_path}")
    return 0


COMMANDS = {
    "addresses": cmd_addresses,
    "proofs": cmd_proofs,
    "consolidate": cmd_consolidate,
}


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = Settings.from_args(args)
    consolidator = make_consolidator(settings)
    try:
        return COMMANDS[args.command](args, consolidator)
    except KeyboardInterrupt:
        print("\nInterrupted by user.", file=sys.stderr)
        return 130

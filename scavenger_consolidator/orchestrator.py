"""
Consolidation orchestrator.

Per request:

  RESOLVE_DONORS -> (none? FAIL) -> BUILD_MESSAGE
    -> for each donor: SIGN -> (dry run? SKIP : SUBMIT)
    -> AGGREGATE -> RESPOND

Pre-flight problems (missing password, bad recipient, wallet unlock, unknown
indexes, no eligible donors) fail the whole request before any signing or
network call. Once donors are being processed every donor is attempted and
the outer response is a success; per-donor outcomes live in "results".
"""

from __future__ import annotations

import sys
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from . import eligibility
from .errors import ConsolidationError, ValidationError
from .ledger import ReceiptsLedger
from .models import (
    ConsolidationRequest,
    DerivedAddress,
    DonorCandidate,
    ProofRequest,
    ProofResult,
)
from .proofs import donate_message, resolve_challenge, sign_for_donor
from .submit import SubmissionClient, curl_command
from .wallet import WalletCapability


DRY_RUN_NOTE = "Dry run only: use the provided curl commands to submit manually."
LIVE_NOTE = "Completed. Check per-donor status/response for success or errors."
PROOFS_NOTE = (
    "Submit these proofs to the consolidation portal. If the portal provides "
    "its own challenge string, re-run with that exact value."
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Consolidator:
    def __init__(
        self,
        wallet_factory: Callable[[], WalletCapability],
        ledger: ReceiptsLedger,
        client: SubmissionClient,
        *,
        address_source: Optional[Callable[[], List[DerivedAddress]]] = None,
        max_workers: int = 1,
        deadline: Optional[float] = None,
        now: Callable[[], datetime] = utcnow,
    ) -> None:
        self.wallet_factory = wallet_factory
        self.ledger = ledger
        self.client = client
        self.address_source = address_source
        self.max_workers = max(1, max_workers)
        self.deadline = deadline
        self.now = now

    # ------------------------ outer boundary ------------------------

    def handle(self, operation: Callable[..., Dict[str, Any]], *args: Any) -> Dict[str, Any]:
        """Run an operation and turn any failure into a {success: False} response."""
        try:
            return operation(*args)
        except ConsolidationError as e:
            return {"success": False, "error": e.message, "status": e.status}
        except Exception as e:
            print(f"ERROR: {getattr(operation, '__name__', 'request')} failed: {e}", file=sys.stderr)
            return {"success": False, "error": str(e) or "Internal error", "status": 500}

    # ------------------------ addresses ------------------------

    def list_addresses(self) -> Dict[str, Any]:
        if self.address_source is None:
            raise ConsolidationError("No address source configured", status=500)
        addresses = self.address_source()
        counts = eligibility.count_user_solutions(self.ledger.read_receipts())

        rows = [
            {
                "index": a.index,
                "address": a.bech32,
                "publicKeyHex": a.public_key_hex,
                "registered": a.registered,
                "totalUserSolutions": counts.get(a.bech32, 0),
            }
            for a in addresses
        ]
        donors = [r for r in rows if r["totalUserSolutions"] > 0]
        suggested = None
        for r in donors:
            if suggested is None or r["totalUserSolutions"] > suggested["totalUserSolutions"]:
                suggested = r
        return {"success": True, "addresses": rows, "donors": donors, "suggestedRecipient": suggested}

    # ------------------------ proofs ------------------------

    def resolve_proofs(self, request: ProofRequest) -> Dict[str, Any]:
        if not isinstance(request.password, str) or not request.password:
            raise ValidationError("Missing or invalid password")
        challenge = resolve_challenge(request.challenge, request.target_address, self.now())

        wallet = self.wallet_factory()
        addresses = wallet.load_wallet(request.password)

        indexes = eligibility.normalize_indexes(request.address_indexes, addresses)
        eligibility.check_indexes(indexes, addresses)

        counts = eligibility.count_user_solutions(self.ledger.read_receipts())
        donors = eligibility.resolve_donors(addresses, counts, indexes)
        if not donors:
            raise ValidationError("No eligible addresses to sign (no addresses with user solutions)")

        public_keys = {a.index: a.public_key_hex for a in addresses}

        def prove(donor: DonorCandidate) -> Dict[str, Any]:
            signature, error = sign_for_donor(wallet, donor.index, challenge)
            entry: Dict[str, Any] = {
                "index": donor.index,
                "address": donor.bech32,
                "signature": signature,
                "totalUserSolutions": donor.total_user_solutions,
            }
            if error is not None:
                entry["signed"] = False
                entry["response"] = {"error": error}
            if request.include_public_key:
                entry["publicKeyHex"] = public_keys[donor.index]
            return entry

        proofs = self._fan_out(prove, donors)
        return {
            "success": True,
            "challenge": challenge,
            "count": len(proofs),
            "proofs": proofs,
            "note": PROOFS_NOTE,
        }

    # ------------------------ consolidate ------------------------

    def consolidate(self, request: ConsolidationRequest) -> Dict[str, Any]:
        if not isinstance(request.password, str) or not request.password:
            raise ValidationError("Missing password")
        recipient = request.recipient_address
        if not eligibility.is_valid_address(recipient):
            raise ValidationError("Invalid recipientAddress")

        wallet = self.wallet_factory()
        addresses = wallet.load_wallet(request.password)

        indexes = eligibility.normalize_indexes(request.address_indexes, addresses)
        eligibility.check_indexes(indexes, addresses)

        counts = eligibility.count_user_solutions(self.ledger.read_receipts())
        donors = eligibility.resolve_donors(addresses, counts, indexes, exclude=recipient)
        if not donors:
            raise ValidationError("No donor addresses with user solutions")

        message = donate_message(recipient)

        def process(donor: DonorCandidate) -> ProofResult:
            signature, error = sign_for_donor(wallet, donor.index, message)
            if signature is None:
                return ProofResult(
                    index=donor.index,
                    donor=donor.bech32,
                    total_user_solutions=donor.total_user_solutions,
                    signed=False,
                    status=0,
                    response={"error": error},
                )

            url = self.client.donate_url(recipient, donor.bech32, signature)
            result = ProofResult(
                index=donor.index,
                donor=donor.bech32,
                total_user_solutions=donor.total_user_solutions,
                signed=True,
                signature=signature,
                curl=curl_command(url),
            )
            if request.dry_run:
                return result
            try:
                outcome = self.client.submit(
                    url,
                    request.max_retries,
                    request.initial_backoff_seconds,
                    deadline=self.deadline,
                )
            except Exception as e:
                result.status = 0
                result.response = {"error": str(e) or "Submission failed"}
                return result
            result.status = outcome.status
            result.response = outcome.response
            result.attempts = outcome.attempts
            return result

        results = self._fan_out(process, donors)
        return {
            "success": True,
            "dryRun": request.dry_run,
            "message": message,
            "recipientAddress": recipient,
            "donors": len(results),
            "results": [r.to_dict() for r in results],
            "note": DRY_RUN_NOTE if request.dry_run else LIVE_NOTE,
        }

    def _fan_out(self, fn: Callable[[DonorCandidate], Any], donors: List[DonorCandidate]) -> List[Any]:
        # Results keep donor order; each donor fills only its own slot.
        if self.max_workers == 1 or len(donors) == 1:
            return [fn(d) for d in donors]
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(donors))) as pool:
            return list(pool.map(fn, donors))

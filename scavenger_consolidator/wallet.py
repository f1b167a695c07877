"""
Wallet signing capability.

The orchestrator only talks to WalletCapability. CardanoSignerWallet is the
implementation used by the CLI: the password is the wallet mnemonic, the
derived addresses come from the wallet's address file, and every signature is
a CIP-8 COSE_Sign1 produced by cardano-signer for

  m / 1852' / 1815' / ACCOUNT' / 0 / INDEX
"""

from __future__ import annotations

import json
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Sequence, Tuple, Union

from .errors import AuthenticationError, SigningError
from .ledger import load_derived_addresses
from .models import DerivedAddress


MNEMONIC_WORD_COUNTS = {12, 15, 18, 21, 24}


class WalletCapability(Protocol):
    def load_wallet(self, password: str) -> List[DerivedAddress]:
        ...

    def sign_message(self, index: int, message: str) -> str:
        ...


# ------------------------ subprocess helpers ------------------------

def ensure_binary(name: str) -> None:
    if shutil.which(name) is None:
        raise SigningError(f"required binary not found on PATH: {name}")


def run(cmd: Sequence[str], *, input_text: Optional[str] = None, timeout: Optional[int] = None) -> subprocess.CompletedProcess:
    """Run a command, capturing stdout/stderr."""
    try:
        return subprocess.run(
            list(cmd),
            input=input_text,
            text=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            check=False,
            timeout=timeout,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        raise SigningError(f"Failed to execute {cmd[0]}: {e}") from e


def json_parse_maybe_trailing(stdout: str) -> dict:
    """Parse the first JSON object in stdout, ignoring non-JSON noise around it."""
    s = stdout.strip()
    if not s:
        raise SigningError("No signer output to parse as JSON")
    decoder = json.JSONDecoder()
    start = s.find("{")
    while start != -1:
        try:
            obj, _ = decoder.raw_decode(s, start)
            return obj
        except json.JSONDecodeError:
            start = s.find("{", start + 1)
    raise SigningError("Signer output is not JSON")


def key_path(account: int, index: int) -> str:
    return f"1852H/1815H/{account}H/0/{index}"


# ------------------------ cardano-signer wallet ------------------------

class CardanoSignerWallet:
    def __init__(self, addresses_file: Union[str, Path], account: int = 0, signer: str = "cardano-signer") -> None:
        self.addresses_file = Path(addresses_file)
        self.account = account
        self.signer = signer
        self._mnemonic: Optional[str] = None
        self._addresses: Dict[int, DerivedAddress] = {}

    def load_wallet(self, password: str) -> List[DerivedAddress]:
        words = (password or "").split()
        if len(words) not in MNEMONIC_WORD_COUNTS:
            raise AuthenticationError(f"Mnemonic has {len(words)} words (expected 12/15/18/21/24)")
        mnemonic = " ".join(words)
        addresses = load_derived_addresses(self.addresses_file)

        reference = next((a for a in addresses if a.public_key_hex), None)
        if reference is not None:
            with tempfile.TemporaryDirectory(prefix="consolidate-") as tmpdir:
                _, pubkey_hex = self._keygen(mnemonic, reference.index, Path(tmpdir))
            if pubkey_hex.lower() != reference.public_key_hex.lower():
                raise AuthenticationError("Mnemonic does not match the wallet's derived addresses")

        self._mnemonic = mnemonic
        self._addresses = {a.index: a for a in addresses}
        return addresses

    def sign_message(self, index: int, message: str) -> str:
        if self._mnemonic is None:
            raise SigningError("Wallet is locked")
        addr = self._addresses.get(index)
        if addr is None:
            raise SigningError(f"Unknown address index: {index}")
        with tempfile.TemporaryDirectory(prefix="consolidate-") as tmpdir:
            skey_path, _ = self._keygen(self._mnemonic, index, Path(tmpdir))
            sig_hex, _ = self._cip8_sign(skey_path, addr.bech32, message)
        return sig_hex

    def _keygen(self, mnemonic: str, index: int, out_dir: Path) -> Tuple[Path, str]:
        ensure_binary(self.signer)
        path = key_path(self.account, index)
        skey_path = out_dir / "skey.skey"
        proc = run([
            self.signer, "keygen",
            "--mnemonics", mnemonic,
            "--path", path,
            "--json-extended",
            "--out-skey", str(skey_path),
        ])
        if proc.returncode != 0:
            raise SigningError(f"cardano-signer keygen failed for {path}: {proc.stderr.strip()}")
        if not skey_path.exists():
            raise SigningError("cardano-signer keygen reported success but skey file missing")
        data = json_parse_maybe_trailing(proc.stdout)
        pubkey_hex = data.get("publicKey")
        if not isinstance(pubkey_hex, str):
            raise SigningError("Missing publicKey in keygen output")
        return skey_path, pubkey_hex

    def _cip8_sign(self, skey_path: Path, address: str, message: str) -> Tuple[str, str]:
        proc = run([
            self.signer, "sign",
            "--cip8",
            "--data", message,
            "--secret-key", str(skey_path),
            "--address", address,
            "--json-extended",
        ])
        if proc.returncode != 0:
            raise SigningError(f"cardano-signer sign failed: {proc.stderr.strip() or proc.stdout.strip()}")
        data = json_parse_maybe_trailing(proc.stdout)
        output = data.get("output")
        sig_hex = output.get("COSE_Sign1_hex") if isinstance(output, dict) else None
        pubkey_hex = data.get("publicKey")
        if not isinstance(sig_hex, str):
            raise SigningError("Missing output.COSE_Sign1_hex in signer output")
        if not isinstance(pubkey_hex, str):
            raise SigningError("Missing publicKey in signer output")
        try:
            int(sig_hex, 16)
        except ValueError:
            raise SigningError("Signer returned a non-hex signature") from None
        return sig_hex, pubkey_hex

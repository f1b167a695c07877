import hashlib
import json
import threading

import pytest
import requests

from scavenger_consolidator.errors import AuthenticationError, SigningError
from scavenger_consolidator.models import DerivedAddress, Receipt


PASSWORD = "correct horse battery staple"
RECIPIENT = "addr1qrecipient000000000000000000000000000"


def make_address(index, registered=True):
    return DerivedAddress(
        index=index,
        bech32=f"addr1qdonor{index:030d}",
        public_key_hex=f"{index:064x}",
        registered=registered,
    )


# =============================================================================
# FAKE COLLABORATORS
# =============================================================================

class FakeWallet:
    """Deterministic signer: signature = sha256(index|message)."""

    def __init__(self, addresses, password=PASSWORD, failing=(), crashing=()):
        self.addresses = list(addresses)
        self.password = password
        self.failing = set(failing)
        self.crashing = set(crashing)
        self.unlocked = False
        self.signed = []
        self._lock = threading.Lock()

    def load_wallet(self, password):
        if password != self.password:
            raise AuthenticationError("Failed to decrypt wallet")
        self.unlocked = True
        return list(self.addresses)

    def sign_message(self, index, message):
        if not self.unlocked:
            raise SigningError("Wallet is locked")
        if index in self.failing:
            raise SigningError(f"key unavailable for index {index}")
        if index in self.crashing:
            raise RuntimeError("signer crashed")
        with self._lock:
            self.signed.append((index, message))
        return hashlib.sha256(f"{index}|{message}".encode()).hexdigest()


class FakeResponse:
    def __init__(self, status_code, body=""):
        self.status_code = status_code
        self.text = body if isinstance(body, str) else json.dumps(body)

    @property
    def ok(self):
        return self.status_code < 400


class FakeSession:
    """Replays scripted responses; an Exception instance in the script is raised."""

    def __init__(self, script=None, default=None):
        self.script = list(script or [])
        self.default = default or FakeResponse(200, {"status": "success"})
        self.calls = []
        self._lock = threading.Lock()

    def post(self, url, json=None, headers=None, timeout=None):
        with self._lock:
            self.calls.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
            item = self.script.pop(0) if self.script else self.default
        if isinstance(item, Exception):
            raise item
        return item


class RecordingSleep:
    def __init__(self):
        self.waits = []

    def __call__(self, seconds):
        self.waits.append(seconds)


class FakeLedger:
    def __init__(self, receipts):
        self.receipts = list(receipts)
        self.reads = 0

    def read_receipts(self):
        self.reads += 1
        return list(self.receipts)


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def addresses():
    return [make_address(i) for i in range(4)]


@pytest.fixture
def receipts(addresses):
    # index 0: 2 user + 1 dev fee, index 1: 1 user, index 2: dev fee only, index 3: none
    return [
        Receipt(address=addresses[0].bech32, is_dev_fee=False),
        Receipt(address=addresses[0].bech32, is_dev_fee=False),
        Receipt(address=addresses[0].bech32, is_dev_fee=True),
        Receipt(address=addresses[1].bech32, is_dev_fee=False),
        Receipt(address=addresses[2].bech32, is_dev_fee=True),
    ]


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def connection_error():
    return requests.ConnectionError("Name or service not known")

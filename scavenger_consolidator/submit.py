from __future__ import annotations

import json
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional
from urllib.parse import quote

import requests

from .config import DEFAULT_API_URL, DEFAULT_TIMEOUT, DEFAULT_UA


RETRYABLE_STATUSES = {408, 429}

# encodeURIComponent leaves these unescaped as well as alphanumerics and -_.~
_URI_COMPONENT_SAFE = "!*'()"


@dataclass
class SubmissionOutcome:
    status: int
    response: Any
    attempts: int = 1
    waits: List[float] = field(default_factory=list)


def parse_body(text: str) -> Any:
    """Decode a JSON body, or wrap the raw text when it isn't JSON."""
    try:
        return json.loads(text)
    except ValueError:
        return {"raw": text}


def classify_status(http_code: int, *, is_network_error: bool = False) -> str:
    """Map HTTP status codes (and network failures) to status classes."""
    if is_network_error or http_code == 0:
        return "network_error"
    if 200 <= http_code < 300:
        return "success"
    if http_code == 409:
        return "already_assigned"
    if http_code == 404:
        return "not_registered"
    if http_code == 429:
        return "rate_limited"
    if http_code == 408:
        return "timeout"
    if 400 <= http_code < 500:
        return "client_error"
    if 500 <= http_code < 600:
        return "server_error"
    return "other"


def curl_command(url: str) -> str:
    return f'curl -L -X POST "{url}" -d "{{}}"'


class SubmissionClient:
    """
    POSTs donate_to calls to the Scavenger API.

    Each submit() call runs its own retry clock: 429, 408 and network errors
    are retried while attempts <= max_retries, waiting initial_backoff seconds
    before the first retry and doubling after each one. Any other status is
    final on the first response.
    """

    def __init__(
        self,
        api_url: str = DEFAULT_API_URL,
        session: Optional[requests.Session] = None,
        *,
        user_agent: str = DEFAULT_UA,
        timeout: int = DEFAULT_TIMEOUT,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.api_url = api_url.rstrip("/")
        self.user_agent = user_agent
        self._shared_session = session
        self._local = threading.local()
        self.timeout = timeout
        self.sleep = sleep
        self.clock = clock

    @property
    def session(self) -> requests.Session:
        """The injected session, or one owned by the calling thread."""
        if self._shared_session is not None:
            return self._shared_session
        session = getattr(self._local, "session", None)
        if session is None:
            session = requests.Session()
            session.headers.update({"User-Agent": self.user_agent})
            self._local.session = session
        return session

    def donate_url(self, recipient: str, donor: str, signature: str) -> str:
        encoded_sig = quote(signature, safe=_URI_COMPONENT_SAFE)
        return f"{self.api_url}/donate_to/{recipient}/{donor}/{encoded_sig}"

    def post(self, url: str) -> requests.Response:
        headers = {"Content-Type": "application/json"}
        return self.session.post(url, json={}, headers=headers, timeout=self.timeout)

    def submit(
        self,
        url: str,
        max_retries: int,
        initial_backoff: float,
        deadline: Optional[float] = None,
    ) -> SubmissionOutcome:
        started = self.clock()
        attempt = 0
        wait = max(1, initial_backoff)
        waits: List[float] = []

        while True:
            attempt += 1
            try:
                resp = self.post(url)
            except requests.RequestException as e:
                outcome = SubmissionOutcome(
                    status=0,
                    response={"error": str(e) or "Network error"},
                    attempts=attempt,
                    waits=waits,
                )
            else:
                outcome = SubmissionOutcome(
                    status=resp.status_code,
                    response=parse_body(resp.text),
                    attempts=attempt,
                    waits=waits,
                )
                if resp.status_code not in RETRYABLE_STATUSES:
                    return outcome

            if attempt > max_retries:
                return outcome
            if deadline is not None and self.clock() - started + wait > deadline:
                return outcome

            self.sleep(wait)
            waits.append(wait)
            wait *= 2

"""
Shared fakes for the crawler tests.

FakeSession stands in for requests.Session: every get() is routed to a
handler `handler(prefix, call_number) -> response` so tests can script the
endpoint per prefix. With by_url=True the handler also gets the URL first,
for runs that sweep several endpoints. No test touches the network or
sleeps for real.
"""

import sys
import threading
from pathlib import Path
from unittest.mock import MagicMock

import pytest

# Ensure project root on path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from autocomplete_crawler.client import RateLimitedClient
from autocomplete_crawler.config import CrawlConfig


def make_response(status=200, payload=None, bad_json=False):
    response = MagicMock()
    response.status_code = status
    if bad_json:
        response.json.side_effect = ValueError("Expecting value")
    else:
        response.json.return_value = [] if payload is None else payload
    return response


class FakeSession:
    def __init__(self, handler, by_url=False):
        self.handler = handler
        self.by_url = by_url
        self.calls = []
        self.closed = False
        self._counts = {}
        self._lock = threading.Lock()

    def get(self, url, params=None, timeout=None):
        prefix = params["query"]
        with self._lock:
            self.calls.append((url, dict(params), timeout))
            self._counts[prefix] = self._counts.get(prefix, 0) + 1
            call_number = self._counts[prefix]
        if self.by_url:
            result = self.handler(url, prefix, call_number)
        else:
            result = self.handler(prefix, call_number)
        if isinstance(result, Exception):
            raise result
        return result

    def queried(self):
        with self._lock:
            return [params["query"] for _, params, _ in self.calls]

    def close(self):
        self.closed = True


class SleepRecorder:
    def __init__(self):
        self.calls = []
        self._lock = threading.Lock()

    def __call__(self, seconds):
        with self._lock:
            self.calls.append(seconds)

    @property
    def total(self):
        return sum(self.calls)


def names_for(prefix, count):
    return [f"{prefix}{i}" for i in range(count)]


@pytest.fixture
def config():
    """Config with no pacing or jitter so timings are exact."""
    return CrawlConfig(
        endpoint="http://autocomplete.test/v1/autocomplete",
        request_delay=0.0,
        request_jitter=0.0,
        backoff_jitter=0.0,
        probe_cap=False,
        status_interval=3600.0,
    )


@pytest.fixture
def sleeper():
    return SleepRecorder()


@pytest.fixture
def make_client(config, sleeper):
    def _make(handler, cfg=None):
        session = FakeSession(handler)
        client = RateLimitedClient(cfg or config, session=session, sleep=sleeper)
        return client, session
    return _make

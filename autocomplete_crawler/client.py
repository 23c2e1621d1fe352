"""
HTTP client for the autocomplete endpoint.

Each call to fetch() issues `GET <endpoint>?query=<prefix>` and returns a
FetchResult. Throttling (429/503) is retried with capped exponential backoff
in a bounded loop; every other failure gives up on the prefix right away and
returns an empty result so the crawl keeps moving.
"""

import logging
import random
import threading
import time
from collections import deque
from dataclasses import dataclass, field

import requests

from autocomplete_crawler.errors import EndpointUnreachable, RateLimited, Transient

OK = "ok"
RATE_LIMITED = "rate_limited"
TRANSIENT = "transient"

RATE_LIMIT_STATUSES = (429, 503)


@dataclass
class RequestAttempt:
    prefix: str
    attempt: int
    timestamp: float
    outcome: str


@dataclass
class FetchResult:
    prefix: str
    names: list = field(default_factory=list)
    outcome: str = OK
    attempts: int = 1
    backoff: float = 0.0  # total seconds slept in backoff
    error: str = ""

    @property
    def ok(self):
        return self.outcome == OK


def parse_names(payload):
    """Accept either a bare JSON array or an object carrying a `results` array."""
    if isinstance(payload, dict):
        payload = payload.get("results")
    if not isinstance(payload, list):
        raise ValueError(f"Unexpected response format: {type(payload).__name__}")
    return [name for name in payload if isinstance(name, str)]


class RateLimitedClient:
    def __init__(self, config, session=None, sleep=time.sleep, rng=None, history=200):
        self.config = config
        # requests does not document Session as thread-safe, so each worker
        # thread gets its own unless a session is injected
        self._session = session
        self._local = threading.local()
        self._sessions = []
        self._sessions_lock = threading.Lock()
        self.sleep = sleep
        self.rng = rng or random.Random()

        # Shared across worker threads
        self.request_count = 0
        self._count_lock = threading.Lock()
        self.attempts = deque(maxlen=history)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    @property
    def session(self):
        if self._session is not None:
            return self._session
        session = getattr(self._local, "session", None)
        if session is None:
            session = requests.Session()
            self._local.session = session
            with self._sessions_lock:
                self._sessions.append(session)
        return session

    def close(self):
        if self._session is not None:
            self._session.close()
        with self._sessions_lock:
            sessions, self._sessions = self._sessions, []
        for session in sessions:
            session.close()

    def pace(self):
        """Sleep the inter-request delay plus random jitter."""
        delay = self.config.request_delay + self.rng.uniform(0, self.config.request_jitter)
        if delay > 0:
            self.sleep(delay)
        return delay

    def backoff_delay(self, attempt):
        """Delay before retry number `attempt` (1-based) after a throttling response."""
        jitter = self.rng.uniform(0, self.config.backoff_jitter)
        return min(self.config.backoff_base * (2 ** attempt) + jitter, self.config.backoff_cap)

    def fetch(self, prefix):
        attempt = 0
        backoff_total = 0.0
        while True:
            started = time.time()
            try:
                names = self._request(prefix)
            except RateLimited as e:
                self.attempts.append(RequestAttempt(prefix, attempt + 1, started, RATE_LIMITED))
                attempt += 1
                if attempt > self.config.max_retries:
                    logging.error(f"Max retries reached for query '{prefix}'. Skipping.")
                    return FetchResult(prefix, [], RATE_LIMITED, attempt, backoff_total, str(e))

                delay = self.backoff_delay(attempt)
                logging.warning(
                    f"Rate limited ({e.status_code}) on '{prefix}'. "
                    f"Sleeping for {delay:.2f} seconds. (Retry {attempt}/{self.config.max_retries})"
                )
                self.sleep(delay)
                backoff_total += delay
                continue
            except Transient as e:
                self.attempts.append(RequestAttempt(prefix, attempt + 1, started, TRANSIENT))
                logging.error(f"Error querying '{prefix}': {e}")
                return FetchResult(prefix, [], TRANSIENT, attempt + 1, backoff_total, str(e))

            self.attempts.append(RequestAttempt(prefix, attempt + 1, started, OK))
            logging.debug(f"Query '{prefix}' returned {len(names)} suggestions")
            return FetchResult(prefix, names, OK, attempt + 1, backoff_total)

    def _request(self, prefix):
        with self._count_lock:
            self.request_count += 1

        params = dict(self.config.extra_params)
        params["query"] = prefix
        try:
            response = self.session.get(self.config.endpoint, params=params, timeout=self.config.timeout)
        except requests.exceptions.RequestException as e:
            raise Transient(prefix, f"Request error: {e}") from e

        if response.status_code in RATE_LIMIT_STATUSES:
            raise RateLimited(prefix, response.status_code)
        if not 200 <= response.status_code < 300:
            raise Transient(prefix, f"Error status code: {response.status_code}")

        try:
            return parse_names(response.json())
        except ValueError as e:
            raise Transient(prefix, f"Malformed response: {e}") from e

    def check_reachable(self, prefix=""):
        """
        Issue one request to make sure the endpoint exists before crawling.

        Connection/DNS failures, timeouts and 404 are fatal. Any HTTP answer,
        including throttling, proves the endpoint is there.
        """
        with self._count_lock:
            self.request_count += 1
        params = dict(self.config.extra_params)
        params["query"] = prefix
        try:
            response = self.session.get(self.config.endpoint, params=params, timeout=self.config.timeout)
        except requests.exceptions.ConnectionError as e:
            raise EndpointUnreachable(f"Cannot reach {self.config.endpoint}: {e}") from e
        except requests.exceptions.RequestException as e:
            raise EndpointUnreachable(f"Request to {self.config.endpoint} failed: {e}") from e

        if response.status_code == 404:
            raise EndpointUnreachable(f"Endpoint {self.config.endpoint} does not exist (404)")
        logging.info(f"Endpoint {self.config.endpoint} reachable (status {response.status_code})")
        return response.status_code

    def average_interval(self):
        """Mean seconds between recent requests, or None with too little history."""
        stamps = [a.timestamp for a in list(self.attempts)]
        if len(stamps) < 10:
            return None
        stamps.sort()
        return (stamps[-1] - stamps[0]) / (len(stamps) - 1)

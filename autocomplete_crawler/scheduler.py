"""
Breadth-first crawl over the prefix tree.

The frontier is drained in batches of at most `concurrency` prefixes, each
explored on its own worker thread. Children produced by a batch are queued
only once the whole batch is done, so prefixes are explored level by level
in the order they were queued.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

from autocomplete_crawler.accumulator import ResultAccumulator
from autocomplete_crawler.client import RATE_LIMITED, TRANSIENT, FetchResult
from autocomplete_crawler.frontier import Frontier
from autocomplete_crawler.policy import ExpansionPolicy
from autocomplete_crawler.storage import CheckpointState

# Average spacing below this means we are hammering the endpoint
MIN_REQUEST_INTERVAL = 0.1


@dataclass
class CrawlReport:
    names: set = field(default_factory=set)
    requests: int = 0
    prefixes_explored: int = 0
    skipped: list = field(default_factory=list)  # gave up after repeated throttling
    failed: list = field(default_factory=list)  # transient failures, treated as empty
    backoff: dict = field(default_factory=dict)  # prefix -> seconds slept in backoff
    length_stats: dict = field(default_factory=dict)
    elapsed: float = 0.0
    stopped: bool = False

    @property
    def degraded(self):
        return len(self.skipped) + len(self.failed)

    @property
    def efficiency(self):
        return len(self.names) / self.requests if self.requests else 0.0


class CrawlScheduler:
    def __init__(self, config, client, frontier=None, accumulator=None, policy=None,
                 checkpointer=None, stop_event=None):
        self.config = config
        self.client = client
        self.frontier = frontier if frontier is not None else Frontier()
        self.accumulator = accumulator if accumulator is not None else ResultAccumulator()
        self.policy = policy or ExpansionPolicy.from_config(config)
        self.checkpointer = checkpointer
        self._stop = stop_event or threading.Event()

        self._stats_lock = threading.Lock()
        self._skipped = []
        self._failed = []
        self._backoff = {}
        self._length_stats = {}
        self._last_checkpoint = 0
        self._last_status = 0.0

    def stop(self):
        """Let in-flight fetches finish, then stop draining the frontier."""
        self._stop.set()

    @property
    def stopped(self):
        return self._stop.is_set()

    def seed(self, prefixes=None, explored=None):
        """
        Queue the seed prefixes (the configured seeds by default).

        `explored` maps prefixes that were already fetched, e.g. while
        measuring the result cap, to their names. Those are marked visited
        without a second request and their children are queued after the
        seeds.
        """
        children = []
        for prefix, names in (explored or {}).items():
            if not self.frontier.claim(prefix):
                continue
            self.accumulator.merge(names)
            self._record(prefix, FetchResult(prefix, list(names)))
            children.extend(self.policy.expand(prefix, names))

        self.frontier.push_many(self.config.seeds if prefixes is None else prefixes)
        self.frontier.push_many(children)

    def run(self, seed_prefixes=None):
        if seed_prefixes is None and not self.frontier and self.frontier.visited_count == 0:
            seed_prefixes = list(self.config.seeds)
        if seed_prefixes:
            self.frontier.push_many(seed_prefixes)

        concurrency = self.config.concurrency
        logging.info(
            f"Starting crawl with {len(self.frontier)} queued prefixes, {concurrency} workers, "
            f"result cap {self.policy.result_cap}"
        )
        start_time = time.time()
        self._last_status = start_time
        self._last_checkpoint = self.client.request_count

        with ThreadPoolExecutor(max_workers=concurrency, thread_name_prefix="crawl") as executor:
            while self.frontier and not self.stopped:
                batch = self.frontier.next_batch(concurrency)
                futures = [executor.submit(self.explore, prefix) for prefix in batch]
                children = self._collect(futures)
                self.frontier.push_many(children)

                logging.debug(
                    f"Queue size: {len(self.frontier)}, Processed: {self.frontier.visited_count}, "
                    f"Names: {len(self.accumulator)}"
                )
                self._maybe_checkpoint()
                self._maybe_log_status(start_time)

        report = self._report(time.time() - start_time)
        if self.checkpointer is not None:
            self.checkpointer.submit(self._checkpoint_state())

        if report.stopped:
            logging.info(f"Crawl stopped with {len(self.frontier)} prefixes still queued")
        logging.info(f"Extraction completed in {report.elapsed:.2f} seconds")
        logging.info(f"Total API requests: {report.requests}")
        logging.info(f"Total names discovered: {len(report.names)}")
        if report.degraded:
            logging.warning(
                f"{len(report.skipped)} prefixes skipped after throttling, "
                f"{len(report.failed)} prefixes failed"
            )
        return report

    def _collect(self, futures):
        children = []
        for future in futures:
            while True:
                try:
                    children.extend(future.result())
                    break
                except KeyboardInterrupt:
                    logging.info("Received keyboard interrupt, waiting for in-flight requests")
                    self.stop()
        return children

    def explore(self, prefix):
        """Fetch one prefix and return the child prefixes to queue."""
        if not self.frontier.claim(prefix):
            return []

        try:
            self.client.pace()
            result = self.client.fetch(prefix)
        except Exception as e:
            logging.error(f"Error exploring prefix '{prefix}': {e}")
            with self._stats_lock:
                self._failed.append(prefix)
            return []

        new_names = self.accumulator.merge(result.names)
        self._record(prefix, result)

        children = self.policy.expand(prefix, result.names)
        logging.info(
            f"Processed '{prefix}' | Found: {len(result.names)} | New names: {new_names} | "
            f"Total unique: {len(self.accumulator)} | Children: {len(children)}"
        )
        return children

    def _record(self, prefix, result):
        with self._stats_lock:
            stats = self._length_stats.setdefault(len(prefix), {"queries": 0, "success": 0})
            stats["queries"] += 1
            if result.names:
                stats["success"] += 1
            if result.backoff:
                self._backoff[prefix] = result.backoff
            if result.outcome == RATE_LIMITED:
                self._skipped.append(prefix)
            elif result.outcome == TRANSIENT:
                self._failed.append(prefix)

    def _checkpoint_state(self):
        return CheckpointState(
            names=list(self.accumulator.snapshot()),
            visited=list(self.frontier.visited()),
            pending=self.frontier.pending(),
            request_count=self.client.request_count,
            timestamp=time.time(),
        )

    def _maybe_checkpoint(self):
        if self.checkpointer is None:
            return
        requests_made = self.client.request_count
        if requests_made - self._last_checkpoint >= self.config.checkpoint_interval:
            self._last_checkpoint = requests_made
            self.checkpointer.submit(self._checkpoint_state())

    def _maybe_log_status(self, start_time):
        now = time.time()
        if now - self._last_status < self.config.status_interval:
            return
        self._last_status = now

        minutes = max((now - start_time) / 60, 0.01)
        names = len(self.accumulator)
        requests_made = self.client.request_count
        logging.info(
            f"Status: {names} names found, {requests_made} requests made, "
            f"{len(self.frontier)} prefixes queued"
        )
        logging.info(f"Rate: {names / minutes:.1f} names/min, {requests_made / minutes:.1f} requests/min")

        interval = self.client.average_interval()
        if interval is not None and interval < MIN_REQUEST_INTERVAL:
            logging.warning(
                f"Average request interval is {interval * 1000:.2f}ms - consider slowing down requests"
            )

    def _report(self, elapsed):
        with self._stats_lock:
            return CrawlReport(
                names=self.accumulator.snapshot(),
                requests=self.client.request_count,
                prefixes_explored=self.frontier.visited_count,
                skipped=list(self._skipped),
                failed=list(self._failed),
                backoff=dict(self._backoff),
                length_stats={k: dict(v) for k, v in self._length_stats.items()},
                elapsed=elapsed,
                stopped=self.stopped and bool(self.frontier),
            )

"""
Tests for autocomplete_crawler/scheduler.py.

End-to-end crawls against scripted endpoints:
- request totals for empty, shallow and throttled endpoints
- every prefix fetched at most once, BFS order, overlap deduplication
- degraded prefixes reported, cooperative stop, checkpoints and resume
"""

import threading
from collections import Counter
from unittest.mock import MagicMock

import pytest
import requests

from autocomplete_crawler.accumulator import ResultAccumulator
from autocomplete_crawler.frontier import Frontier
from autocomplete_crawler.scheduler import CrawlScheduler
from autocomplete_crawler.storage import Checkpointer, load_checkpoint

from conftest import make_response, names_for


def crawl(client, config, **kwargs):
    scheduler = CrawlScheduler(config, client, **kwargs)
    return scheduler, scheduler.run()


# ---------------------------------------------------------------------------
# Request totals
# ---------------------------------------------------------------------------

class TestRequestTotals:

    def test_empty_endpoint_stops_after_seeds(self, make_client, config):
        client, session = make_client(lambda p, n: make_response(payload=[]))
        _, report = crawl(client, config)

        assert report.requests == 26
        assert sorted(session.queried()) == list("abcdefghijklmnopqrstuvwxyz")
        assert report.names == set()
        assert report.prefixes_explored == 26

    def test_shallow_endpoint_explores_two_levels(self, make_client, config):
        config.depth_threshold = 2
        config.concurrency = 5

        def handler(prefix, call):
            names = names_for(prefix, 5) if len(prefix) <= 2 else []
            return make_response(payload=names)

        client, session = make_client(handler)
        _, report = crawl(client, config)

        assert report.requests == 26 + 26 * 26
        assert len(report.names) == (26 + 26 * 26) * 5
        assert max(len(p) for p in session.queried()) == 2

    def test_default_depth_probes_third_level_once(self, make_client, config):
        config.alphabet = "abc"

        def handler(prefix, call):
            return make_response(payload=names_for(prefix, 2) if len(prefix) <= 2 else [])

        client, session = make_client(handler)
        _, report = crawl(client, config)

        # depth 3 prefixes are fetched, come back empty and are not expanded
        assert report.requests == 3 + 9 + 27
        assert max(len(p) for p in session.queried()) == 3

    def test_capped_results_expand_deeper(self, make_client, config):
        config.alphabet = "ab"
        config.depth_threshold = 1
        config.result_cap = 3

        def handler(prefix, call):
            return make_response(payload=names_for(prefix, 3) if len(prefix) <= 3 else [])

        client, session = make_client(handler)
        _, report = crawl(client, config)

        # saturated results expand while len(prefix) <= 2: a,b -> aa..bb -> aaa..bbb
        assert report.requests == 2 + 4 + 8
        assert report.length_stats[3] == {"queries": 8, "success": 8}


# ---------------------------------------------------------------------------
# Visited guard and ordering
# ---------------------------------------------------------------------------

class TestVisitedGuard:

    def test_each_prefix_fetched_once(self, make_client, config):
        config.alphabet = "abcd"
        config.concurrency = 4

        def handler(prefix, call):
            return make_response(payload=["shared"] if len(prefix) < 3 else [])

        client, session = make_client(handler)
        scheduler, report = crawl(client, config)

        counts = Counter(session.queried())
        assert all(n == 1 for n in counts.values())
        assert set(counts) == scheduler.frontier.visited()

    def test_duplicate_seeds_fetched_once(self, make_client, config):
        client, session = make_client(lambda p, n: make_response())
        scheduler = CrawlScheduler(config, client)
        scheduler.run(seed_prefixes=["a", "a", "b", "a"])

        assert sorted(session.queried()) == ["a", "b"]

    def test_explore_skips_claimed_prefix(self, make_client, config):
        client, session = make_client(lambda p, n: make_response(payload=["anna"]))
        scheduler = CrawlScheduler(config, client)

        assert scheduler.explore("a") == scheduler.policy.children("a")
        assert scheduler.explore("a") == []
        assert session.queried() == ["a"]

    def test_breadth_first_order(self, make_client, config):
        config.alphabet = "ab"
        config.concurrency = 1
        config.depth_threshold = 2

        client, session = make_client(lambda p, n: make_response(payload=[p + "!"]))
        crawl(client, config)

        assert session.queried() == ["a", "b", "aa", "ab", "ba", "bb"]

    def test_seed_with_explored_prefixes(self, make_client, config):
        config.alphabet = "ab"
        config.concurrency = 1
        client, session = make_client(lambda p, n: make_response())
        scheduler = CrawlScheduler(config, client)
        scheduler.seed(explored={"a": ["anna"], "b": []})
        report = scheduler.run()

        # "a" and "b" were already fetched, only the children of "a" remain
        assert session.queried() == ["aa", "ab"]
        assert set(report.names) == {"anna"}
        assert report.prefixes_explored == 4
        assert report.length_stats[1] == {"queries": 2, "success": 1}

    def test_seed_alphabet(self, make_client, config):
        config.seed_alphabet = "xy"
        client, session = make_client(lambda p, n: make_response())
        crawl(client, config)

        assert sorted(session.queried()) == ["x", "y"]


# ---------------------------------------------------------------------------
# Accumulation
# ---------------------------------------------------------------------------

class TestAccumulation:

    def test_overlapping_results_deduplicated(self, make_client, config):
        config.alphabet = "ab"
        config.concurrency = 2

        def handler(prefix, call):
            if prefix in ("a", "aa"):
                return make_response(payload=["apple"])
            return make_response(payload=[])

        client, session = make_client(handler)
        report = CrawlScheduler(config, client).run(seed_prefixes=["a", "aa"])

        assert report.names == {"apple"}
        assert session.queried()[:2] in (["a", "aa"], ["aa", "a"])

    def test_shared_accumulator(self, make_client, config):
        accumulator = ResultAccumulator(["preloaded"])
        client, _ = make_client(lambda p, n: make_response(payload=["zed"] if p == "z" else []))
        _, report = crawl(client, config, accumulator=accumulator)

        assert report.names == {"preloaded", "zed"}
        assert accumulator.snapshot() == report.names


# ---------------------------------------------------------------------------
# Throttling and failures
# ---------------------------------------------------------------------------

class TestDegradedPrefixes:

    def test_throttled_twice_then_success(self, make_client, config):
        config.concurrency = 5
        config.depth_threshold = 1

        def handler(prefix, call):
            return make_response(429) if call <= 2 else make_response(payload=[prefix + "name"])

        client, _ = make_client(handler)
        _, report = crawl(client, config)

        base = config.backoff_base
        assert len(report.names) == 26
        assert report.requests == 26 * 3
        assert report.skipped == []
        assert set(report.backoff) == set("abcdefghijklmnopqrstuvwxyz")
        assert all(v == pytest.approx(base * 2 + base * 4) for v in report.backoff.values())

    def test_backoff_within_jitter(self, make_client, config):
        config.backoff_jitter = 0.05

        def handler(prefix, call):
            return make_response(429) if call <= 2 else make_response()

        client, _ = make_client(handler)
        _, report = crawl(client, config)

        for seconds in report.backoff.values():
            assert 6.0 <= seconds <= 6.1

    def test_exhausted_retries_are_skipped(self, make_client, config):
        def handler(prefix, call):
            if prefix == "q":
                return make_response(429)
            return make_response(payload=[prefix] if len(prefix) == 1 else [])

        client, _ = make_client(handler)
        _, report = crawl(client, config)

        assert report.skipped == ["q"]
        assert "q" not in report.names
        assert report.requests == 25 + 25 * 26 + (config.max_retries + 1)

    def test_transient_failures_reported(self, make_client, config):
        def handler(prefix, call):
            if prefix == "c":
                return requests.exceptions.ConnectionError("reset")
            if prefix == "d":
                return make_response(500)
            return make_response()

        client, session = make_client(handler)
        _, report = crawl(client, config)

        assert sorted(report.failed) == ["c", "d"]
        assert report.degraded == 2
        assert Counter(session.queried())["c"] == 1
        assert report.requests == 26

    def test_unexpected_error_contained(self, make_client, config):
        client, _ = make_client(lambda p, n: make_response())
        original = client.fetch

        def fetch(prefix):
            if prefix == "m":
                raise RuntimeError("boom")
            return original(prefix)

        client.fetch = fetch
        _, report = crawl(client, config)

        assert report.failed == ["m"]
        assert report.prefixes_explored == 26


# ---------------------------------------------------------------------------
# Stop signal
# ---------------------------------------------------------------------------

class TestStop:

    def test_stop_lets_batch_finish(self, make_client, config):
        config.concurrency = 1
        holder = {}

        def handler(prefix, call):
            if prefix == "b":
                holder["scheduler"].stop()
            return make_response(payload=[prefix])

        client, session = make_client(handler)
        scheduler = CrawlScheduler(config, client)
        holder["scheduler"] = scheduler
        report = scheduler.run()

        assert session.queried() == ["a", "b"]
        assert report.stopped
        assert report.names == {"a", "b"}
        # children of the finished prefixes stay queued
        assert "aa" in scheduler.frontier.pending()
        assert "ba" in scheduler.frontier.pending()

    def test_external_stop_event(self, make_client, config):
        event = threading.Event()
        event.set()
        client, session = make_client(lambda p, n: make_response())
        scheduler = CrawlScheduler(config, client, stop_event=event)
        report = scheduler.run()

        assert session.queried() == []
        assert report.stopped


# ---------------------------------------------------------------------------
# Checkpoints
# ---------------------------------------------------------------------------

class TestCheckpoints:

    def test_checkpoint_every_n_requests(self, make_client, config):
        config.concurrency = 1
        config.checkpoint_interval = 10
        checkpointer = MagicMock()

        client, _ = make_client(lambda p, n: make_response())
        crawl(client, config, checkpointer=checkpointer)

        # after requests 10 and 20, plus the final one
        assert checkpointer.submit.call_count == 3
        final = checkpointer.submit.call_args_list[-1][0][0]
        assert final.request_count == 26
        assert len(final.visited) == 26
        assert final.pending == []

    def test_resume_skips_visited(self, make_client, config, tmp_path):
        config.alphabet = "ab"
        config.concurrency = 1
        config.checkpoint_interval = 1000
        path = str(tmp_path / "checkpoint.json")
        holder = {}

        def handler(prefix, call):
            if prefix == "b":
                holder["scheduler"].stop()
            return make_response(payload=[prefix])

        client, _ = make_client(handler)
        checkpointer = Checkpointer(path)
        scheduler = CrawlScheduler(config, client, checkpointer=checkpointer)
        holder["scheduler"] = scheduler
        scheduler.run()
        checkpointer.close()

        state = load_checkpoint(path)
        assert sorted(state.visited) == ["a", "b"]
        assert state.pending == ["aa", "ab", "ba", "bb"]

        client2, session2 = make_client(lambda p, n: make_response(payload=[p]))
        frontier = Frontier()
        frontier.restore(state.visited, state.pending)
        accumulator = ResultAccumulator(state.names)
        report = CrawlScheduler(config, client2, frontier=frontier, accumulator=accumulator).run()

        assert session2.queried()[:4] == ["aa", "ab", "ba", "bb"]
        assert "a" not in session2.queried()
        assert {"a", "b", "aa", "bb"} <= report.names
        assert not report.stopped

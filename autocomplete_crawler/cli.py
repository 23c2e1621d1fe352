"""
Command line entry point.

    python -m autocomplete_crawler --endpoint http://host:8000/v1/autocomplete

Several endpoints can be swept in one run, either by repeating --endpoint or
with a `{version}` placeholder:

    python -m autocomplete_crawler --endpoint "http://host:8000/{version}/autocomplete" \
        --versions v1 v2 v3 --summary summary.json

Each endpoint gets its own output file (names_v1.json, ...); endpoints that
cannot be reached are skipped.
"""

import argparse
import logging
import os
import re
import sys
from dataclasses import replace

from autocomplete_crawler.accumulator import ResultAccumulator
from autocomplete_crawler.client import RateLimitedClient
from autocomplete_crawler.config import load_config
from autocomplete_crawler.errors import ConfigError, EndpointUnreachable, FatalError
from autocomplete_crawler.frontier import Frontier
from autocomplete_crawler.policy import ExpansionPolicy
from autocomplete_crawler.probe import CapProbe
from autocomplete_crawler.scheduler import CrawlScheduler
from autocomplete_crawler.storage import (
    Checkpointer,
    export_results,
    load_checkpoint,
    write_summary,
    write_sweep_summary,
)

EXIT_FATAL = 2
EXIT_INTERRUPTED = 130

VERSION_PLACEHOLDER = "{version}"
VERSION_SEGMENT = re.compile(r"/(v\d+)(?:/|$)")


def configure_logging(log_file="autocomplete_crawl.log", verbose=False):
    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.insert(0, logging.FileHandler(log_file))
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=handlers
    )


def _key_value(text):
    key, sep, value = text.partition("=")
    if not sep or not key:
        raise argparse.ArgumentTypeError(f"Expected key=value, got '{text}'")
    return key, value


def build_parser():
    parser = argparse.ArgumentParser(
        prog="autocomplete-crawler",
        description="Enumerate every name an autocomplete endpoint can return.",
    )
    parser.add_argument("--endpoint", action="append",
                        help="Autocomplete URL, queried as <endpoint>?query=<prefix>. Repeat to sweep several")
    parser.add_argument("--versions", nargs="+",
                        help=f"Values substituted for {VERSION_PLACEHOLDER} in --endpoint")
    parser.add_argument("--config", help="JSON file with crawl settings")

    crawl = parser.add_argument_group("crawl")
    crawl.add_argument("--alphabet", help="Symbols appended when expanding a prefix")
    crawl.add_argument("--seed-alphabet", help="Symbols used for the initial one-character prefixes")
    crawl.add_argument("--concurrency", type=int, help="Requests in flight at once")
    crawl.add_argument("--depth-threshold", type=int)
    crawl.add_argument("--shallow-threshold", type=int)
    crawl.add_argument("--result-cap", type=int, help="Results per query when the probe finds none")
    crawl.add_argument("--no-probe", action="store_true", help="Skip measuring the result cap")
    crawl.add_argument("--probe-prefix", action="append", dest="probe_prefixes")

    pacing = parser.add_argument_group("pacing")
    pacing.add_argument("--request-delay", type=float, help="Seconds to wait before each request")
    pacing.add_argument("--request-jitter", type=float)
    pacing.add_argument("--backoff-base", type=float)
    pacing.add_argument("--backoff-cap", type=float)
    pacing.add_argument("--backoff-jitter", type=float, help="Upper bound of random extra backoff")
    pacing.add_argument("--max-retries", type=int)
    pacing.add_argument("--timeout", type=float)
    pacing.add_argument("--param", action="append", type=_key_value, default=[],
                        help="Extra query parameter, key=value")

    output = parser.add_argument_group("output")
    output.add_argument("--output", default="discovered_names.json")
    output.add_argument("--summary", help="Write run statistics to this JSON file")
    output.add_argument("--checkpoint", help="Checkpoint file, written periodically")
    output.add_argument("--checkpoint-interval", type=int)
    output.add_argument("--resume", action="store_true", help="Continue from --checkpoint")
    output.add_argument("--status-interval", type=float)
    output.add_argument("--log-file", default="autocomplete_crawl.log")
    output.add_argument("-v", "--verbose", action="store_true")
    return parser


def config_overrides(args):
    overrides = {
        "endpoint": args.endpoint[0] if args.endpoint else None,
        "alphabet": args.alphabet,
        "seed_alphabet": args.seed_alphabet,
        "concurrency": args.concurrency,
        "depth_threshold": args.depth_threshold,
        "shallow_threshold": args.shallow_threshold,
        "result_cap": args.result_cap,
        "probe_cap": False if args.no_probe else None,
        "probe_prefixes": args.probe_prefixes,
        "request_delay": args.request_delay,
        "request_jitter": args.request_jitter,
        "backoff_base": args.backoff_base,
        "backoff_cap": args.backoff_cap,
        "backoff_jitter": args.backoff_jitter,
        "max_retries": args.max_retries,
        "timeout": args.timeout,
        "checkpoint_interval": args.checkpoint_interval,
        "status_interval": args.status_interval,
        "extra_params": dict(args.param) if args.param else None,
    }
    return overrides


def endpoint_label(url, index):
    match = VERSION_SEGMENT.search(url)
    return match.group(1) if match else f"endpoint{index}"


def endpoint_targets(endpoints, versions=None):
    """Expand endpoints into (label, url) pairs, filling in `{version}`."""
    targets = []
    for url in endpoints:
        if VERSION_PLACEHOLDER in url:
            if not versions:
                raise ConfigError(f"Endpoint {url} has a {VERSION_PLACEHOLDER} placeholder but no --versions")
            targets.extend((version, url.replace(VERSION_PLACEHOLDER, version)) for version in versions)
        else:
            targets.append((endpoint_label(url, len(targets) + 1), url))

    labels = [label for label, _ in targets]
    if len(set(labels)) != len(labels):
        targets = [(f"endpoint{i}", url) for i, (_, url) in enumerate(targets, 1)]
    return targets


def path_for(path, label):
    """names.json -> names_v1.json"""
    if not path:
        return path
    root, ext = os.path.splitext(path)
    return f"{root}_{label}{ext}"


def crawl(config, client, checkpoint=None, resume=False):
    """Probe, optionally resume, and run the crawl. Returns the CrawlReport."""
    frontier = Frontier()
    accumulator = ResultAccumulator()

    client.check_reachable()

    resumed = False
    if resume and checkpoint:
        state = load_checkpoint(checkpoint)
        if state is not None:
            frontier.restore(state.visited, state.pending)
            accumulator.merge(state.names)
            client.request_count += state.request_count
            resumed = True
            logging.info(f"Resumed from checkpoint with {len(accumulator)} names")
        else:
            logging.info(f"No checkpoint at {checkpoint}, starting fresh")

    result_cap = None
    cap_results = {}
    if config.probe_cap:
        probe = CapProbe(client, config.probe_prefixes).run()
        accumulator.merge(probe.names)
        result_cap = probe.cap
        cap_results = probe.results
    policy = ExpansionPolicy.from_config(config, result_cap)

    checkpointer = Checkpointer(checkpoint) if checkpoint else None
    scheduler = CrawlScheduler(config, client, frontier, accumulator, policy, checkpointer)
    # prefixes queried while measuring the cap are not fetched again
    scheduler.seed([] if resumed else None, explored=cap_results)
    try:
        return scheduler.run()
    finally:
        if checkpointer is not None:
            checkpointer.close()


def print_totals(report):
    print(f"Extraction complete. Found {len(report.names)} names.")
    print(f"Made {report.requests} API requests.")
    if report.requests > 0:
        print(f"Efficiency: {report.efficiency:.2f} names per request")
    if report.degraded:
        print(f"Degraded prefixes: {len(report.skipped)} skipped, {len(report.failed)} failed")


def run_single(config, args):
    try:
        with RateLimitedClient(config) as client:
            report = crawl(config, client, args.checkpoint, args.resume)
    except FatalError as e:
        logging.error(f"Fatal: {e}")
        return EXIT_FATAL

    export_results(report.names, args.output)
    if args.summary:
        write_summary(report, args.summary)
    print_totals(report)
    return EXIT_INTERRUPTED if report.stopped else 0


def run_sweep(config, args, targets):
    """Crawl each endpoint in turn. Unreachable ones are skipped, not fatal."""
    entries = {}
    stopped = False
    for label, url in targets:
        target_config = replace(config, endpoint=url)
        logging.info(f"============ Crawling {label}: {url} ============")
        try:
            with RateLimitedClient(target_config) as client:
                report = crawl(target_config, client, path_for(args.checkpoint, label), args.resume)
        except EndpointUnreachable as e:
            logging.warning(f"Skipping {label}: {e}")
            entries[label] = {"endpoint": url, "status": "skipped", "reason": str(e)}
            print(f"Skipped {label}: {e}")
            continue

        export_results(report.names, path_for(args.output, label))
        entries[label] = {"endpoint": url, "status": "crawled", "report": report}
        print(f"No. of searches made for {label}: {report.requests}")
        print(f"No. of results in {label}: {len(report.names)}")
        if report.stopped:
            stopped = True
            break

    if args.summary:
        write_sweep_summary(entries, args.summary)

    if not any(entry["status"] == "crawled" for entry in entries.values()):
        logging.error("No endpoint could be crawled")
        return EXIT_FATAL
    return EXIT_INTERRUPTED if stopped else 0


def main(argv=None):
    args = build_parser().parse_args(argv)
    configure_logging(args.log_file, args.verbose)

    try:
        config = load_config(args.config, config_overrides(args))
        targets = endpoint_targets(args.endpoint or [config.endpoint], args.versions)
    except FatalError as e:
        logging.error(f"Fatal: {e}")
        return EXIT_FATAL

    if len(targets) == 1:
        label, url = targets[0]
        return run_single(replace(config, endpoint=url), args)
    return run_sweep(config, args, targets)


if __name__ == "__main__":
    sys.exit(main())

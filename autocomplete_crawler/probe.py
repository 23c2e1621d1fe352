"""
Startup probe for the per-query result cap.

The endpoint never documents how many suggestions it returns per query, so
the cap is measured: query a handful of common prefixes and, when at least
two of them come back with the same largest non-zero count, take that count
as the cap.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional


@dataclass
class ProbeReport:
    counts: dict = field(default_factory=dict)
    results: dict = field(default_factory=dict)  # prefix -> names, successful queries only
    cap: Optional[int] = None
    names: set = field(default_factory=set)

    @property
    def saturated(self):
        """Prefixes whose result size equals the detected cap."""
        if self.cap is None:
            return []
        return [prefix for prefix, count in self.counts.items() if count == self.cap]


def detect_cap(counts):
    observed = [count for count in counts.values() if count > 0]
    if not observed:
        return None
    largest = max(observed)
    if observed.count(largest) > 1:
        return largest
    return None


class CapProbe:
    def __init__(self, client, prefixes):
        self.client = client
        self.prefixes = list(prefixes)

    def run(self):
        report = ProbeReport()
        for prefix in self.prefixes:
            self.client.pace()
            result = self.client.fetch(prefix)
            if not result.ok:
                logging.warning(f"Probe '{prefix}' failed ({result.outcome}); ignoring it")
                continue
            report.counts[prefix] = len(result.names)
            report.results[prefix] = list(result.names)
            report.names.update(result.names)
            logging.info(f"Probe '{prefix}' returned {len(result.names)} results")

        report.cap = detect_cap(report.counts)
        if report.cap is not None:
            logging.info(
                f"Found {len(report.saturated)} prefixes returning exactly {report.cap} results: "
                f"{', '.join(report.saturated)}. Using result cap {report.cap}"
            )
        else:
            logging.info("No consistent result limit detected across probe prefixes")
        return report

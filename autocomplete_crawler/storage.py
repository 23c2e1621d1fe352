"""
Result export, run summaries and checkpoints.

All writes go to a temp file first and are renamed into place so an
interrupted run never leaves a truncated file behind.
"""

import json
import logging
import os
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field


def _write_json(data, target, indent=2):
    temp_file = f"{target}.tmp"
    with open(temp_file, 'w') as f:
        json.dump(data, f, indent=indent)
    os.replace(temp_file, target)


def export_results(names, target):
    """Write names as a sorted JSON array of strings."""
    _write_json(sorted(names), target)
    logging.info(f"Saved {len(names)} unique names to {target}")


def write_summary(report, target):
    summary = {
        "total_requests": report.requests,
        "total_names": len(report.names),
        "prefixes_explored": report.prefixes_explored,
        "skipped_prefixes": sorted(report.skipped),
        "transient_failures": sorted(report.failed),
        "elapsed_seconds": round(report.elapsed, 2),
        "stopped": report.stopped,
    }
    _write_json(summary, target)
    logging.info(f"Summary saved to {target}")


def write_sweep_summary(entries, target):
    """
    Write one block per endpoint of a multi-endpoint run.

    `entries` maps a label (e.g. "v1") to a dict with the endpoint, its
    status ("crawled" or "skipped") and, when crawled, its report.
    """
    summary = {}
    for label, entry in entries.items():
        report = entry.get("report")
        summary[label] = {
            "endpoint": entry["endpoint"],
            "status": entry["status"],
            "searches": report.requests if report else 0,
            "results": len(report.names) if report else 0,
        }
        if entry.get("reason"):
            summary[label]["reason"] = entry["reason"]
    _write_json(summary, target)
    logging.info(f"Summary for {len(summary)} endpoints saved to {target}")


@dataclass
class CheckpointState:
    names: list = field(default_factory=list)
    visited: list = field(default_factory=list)
    pending: list = field(default_factory=list)
    request_count: int = 0
    timestamp: float = 0.0


def save_checkpoint(state, path):
    data = {
        "discovered_names": sorted(state.names),
        "explored_prefixes": sorted(state.visited),
        "pending_prefixes": list(state.pending),
        "request_count": state.request_count,
        "timestamp": state.timestamp or time.time(),
    }
    _write_json(data, path, indent=None)
    logging.info(
        f"Checkpoint saved with {len(state.names)} names and {len(state.visited)} explored prefixes"
    )


def load_checkpoint(path):
    """Read a checkpoint, or return None when there is none."""
    if not os.path.exists(path):
        return None
    with open(path, 'r') as f:
        data = json.load(f)
    state = CheckpointState(
        names=list(data.get("discovered_names", [])),
        visited=list(data.get("explored_prefixes", [])),
        pending=list(data.get("pending_prefixes", [])),
        request_count=data.get("request_count", 0),
        timestamp=data.get("timestamp", 0.0),
    )
    logging.info(
        f"Checkpoint loaded with {len(state.names)} names, {len(state.visited)} explored "
        f"and {len(state.pending)} pending prefixes"
    )
    return state


class Checkpointer:
    """
    Writes checkpoints on a background thread.

    submit() returns immediately; only the latest write can be in flight at
    a time, older ones queue behind it on the single worker.
    """

    def __init__(self, path):
        self.path = path
        self.saved = 0
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="checkpoint")

    def submit(self, state):
        return self._executor.submit(self._save, state)

    def _save(self, state):
        try:
            save_checkpoint(state, self.path)
        except Exception as e:
            logging.error(f"Error saving checkpoint: {e}")
            return False
        self.saved += 1
        return True

    def close(self):
        self._executor.shutdown(wait=True)

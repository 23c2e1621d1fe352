import threading


class ResultAccumulator:
    """Thread-safe, add-only set of discovered names."""

    def __init__(self, names=()):
        self._names = set(names)
        self._lock = threading.Lock()

    def merge(self, names):
        """Add names and return how many of them were not seen before."""
        with self._lock:
            before = len(self._names)
            self._names.update(names)
            return len(self._names) - before

    def snapshot(self):
        with self._lock:
            return set(self._names)

    def __contains__(self, name):
        with self._lock:
            return name in self._names

    def __len__(self):
        with self._lock:
            return len(self._names)

"""
Pending prefixes and the visited guard.

Prefixes are served FIFO. A prefix is queued at most once and, once
claimed, lives only in the visited set: the pending queue and the visited
set never overlap.
"""

import threading
from collections import deque


class Frontier:
    def __init__(self):
        self._pending = deque()
        self._queued = set()
        self._visited = set()
        self._lock = threading.Lock()

    def push(self, prefix):
        """Queue a prefix. Returns False if it is already queued or visited."""
        with self._lock:
            return self._push(prefix)

    def push_many(self, prefixes):
        with self._lock:
            return sum(1 for prefix in prefixes if self._push(prefix))

    def _push(self, prefix):
        if prefix in self._visited or prefix in self._queued:
            return False
        self._pending.append(prefix)
        self._queued.add(prefix)
        return True

    def next_batch(self, size):
        """Dequeue up to `size` prefixes in FIFO order."""
        batch = []
        with self._lock:
            while self._pending and len(batch) < size:
                prefix = self._pending.popleft()
                self._queued.discard(prefix)
                batch.append(prefix)
        return batch

    def claim(self, prefix):
        """Atomically mark a prefix visited. False means someone already did."""
        with self._lock:
            if prefix in self._visited:
                return False
            self._visited.add(prefix)
            return True

    def is_visited(self, prefix):
        with self._lock:
            return prefix in self._visited

    def restore(self, visited, pending):
        """Load state saved by a checkpoint."""
        with self._lock:
            self._visited.update(visited)
            for prefix in pending:
                self._push(prefix)

    def pending(self):
        with self._lock:
            return list(self._pending)

    def visited(self):
        with self._lock:
            return set(self._visited)

    @property
    def visited_count(self):
        with self._lock:
            return len(self._visited)

    def __len__(self):
        with self._lock:
            return len(self._pending)

    def __bool__(self):
        return len(self) > 0

# llminster: Per-path debounce for bursty filesystem notifications. Editors typically fire several modify events per save; only the first within the window gets through.

import threading
import time
from typing import Callable, Dict, Optional


class Debouncer:
    """
    Suppress a notification when the same path fired less than window_ms ago.

    Entries older than prune_factor * window are dropped periodically so a
    long-running watch does not grow the map without bound.
    """

    def __init__(self, window_ms: int = 500, prune_factor: int = 10, clock: Callable[[], float] = time.monotonic) -> None:
        self.window = window_ms / 1000.0
        self.max_age = max(self.window * prune_factor, 1.0)
        self._clock = clock
        self._lock = threading.Lock()
        self._last_seen: Dict[str, float] = {}
        self._last_prune = clock()

    def should_process(self, path: str, now: Optional[float] = None) -> bool:
        now = self._clock() if now is None else now
        with self._lock:
            last = self._last_seen.get(path)
            if last is not None and (now - last) < self.window:
                return False
            self._last_seen[path] = now
            if now - self._last_prune >= self.max_age:
                self._prune_unlocked(now)
        return True

    def prune(self, now: Optional[float] = None) -> int:
        """Drop stale entries; returns how many were removed."""
        now = self._clock() if now is None else now
        with self._lock:
            return self._prune_unlocked(now)

    def _prune_unlocked(self, now: float) -> int:
        stale = [p for p, ts in self._last_seen.items() if now - ts >= self.max_age]
        for p in stale:
            del self._last_seen[p]
        self._last_prune = now
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._last_seen)

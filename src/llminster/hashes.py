# llminster: Idempotency guard. A lock-protected set of content hashes, claimed atomically per file event and persisted as a JSON array so unchanged files are not reprocessed after a restart.

import json
import pathlib
import threading
from typing import Iterable, List, Optional, Set

from .context import Context
from .fs import write_json


class ProcessedHashes:
    """
    Set of lowercase hex sha256 digests of already-answered content.

    try_mark is the only way to add a hash while watching: it tests and inserts
    in one critical section, so two racing events for the same content cannot
    both proceed. save() rewrites the whole file; a crash between try_mark and
    save can cause one reprocessing after restart.
    """

    def __init__(self, path: pathlib.Path, ctx: Optional[Context] = None, initial: Optional[Iterable[str]] = None) -> None:
        self.path = pathlib.Path(path)
        self.ctx = ctx
        self._lock = threading.Lock()
        self._save_lock = threading.Lock()
        self._hashes: Set[str] = {h.lower() for h in (initial or [])}

    def try_mark(self, digest: str) -> bool:
        """Record digest and return True, or return False if it was already recorded."""
        key = digest.lower()
        with self._lock:
            if key in self._hashes:
                return False
            self._hashes.add(key)
            return True

    def discard(self, digest: str) -> None:
        """Release a claim so the same content can be retried."""
        with self._lock:
            self._hashes.discard(digest.lower())

    def __contains__(self, digest: str) -> bool:
        with self._lock:
            return digest.lower() in self._hashes

    def __len__(self) -> int:
        with self._lock:
            return len(self._hashes)

    def snapshot(self) -> List[str]:
        with self._lock:
            return sorted(self._hashes)

    def load(self) -> int:
        """
        Replace the in-memory set with the persisted one.

        A missing file starts an empty set. An unreadable or malformed file is
        logged and also starts empty. Returns the number of hashes loaded.
        """
        if not self.path.exists():
            self._info("Hashes file not found. Starting with an empty hash set.")
            loaded: Set[str] = set()
        else:
            try:
                with self.path.open("r", encoding="utf-8") as f:
                    data = json.load(f)
                if not isinstance(data, list):
                    raise ValueError("expected a JSON array of hash strings")
                loaded = {str(h).lower() for h in data}
                self._info(f"Loaded {len(loaded)} processed hashes.")
            except (OSError, ValueError) as e:
                if self.ctx:
                    self.ctx.error_message(f"Error loading processed hashes from {self.path}: {e}")
                loaded = set()
        with self._lock:
            self._hashes = loaded
        return len(loaded)

    def save(self) -> None:
        """Persist the full set; concurrent saves are serialized."""
        with self._save_lock:
            hashes = self.snapshot()
            write_json(self.path, hashes)
            if self.ctx:
                self.ctx.debug(f"Saved {len(hashes)} processed hashes to {self.path}")

    def _info(self, message: str) -> None:
        if self.ctx:
            self.ctx.log(message)

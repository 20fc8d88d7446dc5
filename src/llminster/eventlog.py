# llminster: Append-only, per-session turn store. The orchestrator only needs append/get_turns; MemoryEventLog backs tests and short-lived sessions, JsonlEventLog persists one JSONL file per session.

import pathlib
import re
import threading
from typing import Dict, List

from pydantic import ValidationError

from .errors import EventLogError
from .fs import append_jsonl, read_jsonl
from .models import Turn

_SESSION_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]{0,127}$")


class EventLog:
    """
    Append/read contract for session turns.

    append must be safe for concurrent callers. It does not hand out sequence
    numbers; callers serialize read-max-then-append themselves.
    """

    def append(self, turn: Turn) -> None:
        raise NotImplementedError

    def get_turns(self, session_id: str, from_sequence: int = 0) -> List[Turn]:
        """Return turns with sequence_number >= from_sequence, ordered by sequence_number."""
        raise NotImplementedError


class MemoryEventLog(EventLog):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._turns: Dict[str, List[Turn]] = {}

    def append(self, turn: Turn) -> None:
        with self._lock:
            self._turns.setdefault(turn.session_id, []).append(turn.model_copy())

    def get_turns(self, session_id: str, from_sequence: int = 0) -> List[Turn]:
        with self._lock:
            turns = list(self._turns.get(session_id, []))
        return sorted((t for t in turns if t.sequence_number >= from_sequence), key=lambda t: t.sequence_number)


class JsonlEventLog(EventLog):
    """
    One <session_id>.jsonl file per session under root.

    Lines are written with a single append per turn; a process-wide lock keeps
    concurrent appends from interleaving.
    """

    def __init__(self, root: pathlib.Path) -> None:
        self.root = pathlib.Path(root)
        self._lock = threading.Lock()

    def session_path(self, session_id: str) -> pathlib.Path:
        if not _SESSION_ID_RE.match(session_id or ""):
            raise EventLogError(f"Invalid session id: {session_id!r}")
        return self.root / f"{session_id}.jsonl"

    def append(self, turn: Turn) -> None:
        path = self.session_path(turn.session_id)
        try:
            with self._lock:
                append_jsonl(path, turn.model_dump(mode="json"))
        except OSError as e:
            raise EventLogError(f"Failed to append turn to {path}: {e}") from e

    def get_turns(self, session_id: str, from_sequence: int = 0) -> List[Turn]:
        path = self.session_path(session_id)
        try:
            with self._lock:
                rows = read_jsonl(path)
        except OSError as e:
            raise EventLogError(f"Failed to read turns from {path}: {e}") from e
        turns: List[Turn] = []
        for row in rows:
            try:
                turns.append(Turn.model_validate(row))
            except ValidationError as e:
                raise EventLogError(f"Corrupt turn in {path}: {e}") from e
        return sorted((t for t in turns if t.sequence_number >= from_sequence), key=lambda t: t.sequence_number)

    def list_sessions(self) -> List[str]:
        if not self.root.exists():
            return []
        return sorted(p.stem for p in self.root.glob("*.jsonl"))

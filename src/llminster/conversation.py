# llminster: Event-sourced conversation engine. Rebuilds the context window from a session's turns and runs one user -> model round-trip, returning Success / Empty / Failure values instead of raising.

import os
import threading
import weakref
from typing import Iterable, Optional

from .config import USER_SPEAKER
from .context import Context
from .eventlog import EventLog
from .models import Turn
from .results import Empty, Failure, Result, Success


def format_context_window(turns: Iterable[Turn]) -> str:
    """Render turns as "{speaker}: {content}" lines in sequence order, trailing whitespace trimmed."""
    ordered = sorted(turns, key=lambda t: t.sequence_number)
    return os.linesep.join(f"{t.speaker}: {t.content}" for t in ordered).rstrip()


class _SessionLock:
    """Mutex for one session; a plain object so the registry can hold it weakly."""

    def __init__(self) -> None:
        self._lock = threading.Lock()

    def __enter__(self) -> "_SessionLock":
        self._lock.acquire()
        return self

    def __exit__(self, *exc) -> None:
        self._lock.release()


class ConversationOrchestrator:
    """
    Owns the message protocol: append user turn -> reconstruct -> generate -> append model turn.

    Sequence numbers are assigned as max + 1 under a per-session lock, so two
    concurrent process_message calls on the same session never write the same
    sequence_number. The model call itself runs outside the lock. A session's
    lock lives only while some call holds it.
    """

    def __init__(self, event_log: EventLog, ctx: Optional[Context] = None, max_tokens: int = 4096) -> None:
        self.event_log = event_log
        self.ctx = ctx
        self.max_tokens = max_tokens
        self._registry_lock = threading.Lock()
        self._session_locks: "weakref.WeakValueDictionary[str, _SessionLock]" = weakref.WeakValueDictionary()

    def _session_lock(self, session_id: str) -> _SessionLock:
        with self._registry_lock:
            lock = self._session_locks.get(session_id)
            if lock is None:
                lock = _SessionLock()
                self._session_locks[session_id] = lock
            return lock

    def _debug(self, message: str) -> None:
        if self.ctx:
            self.ctx.debug(message)

    def reconstruct_window(self, session_id: str) -> Result:
        try:
            turns = self.event_log.get_turns(session_id, 0)
        except Exception as e:
            return Failure(f"Failed to read events for session {session_id}: {e}")
        if not turns:
            return Empty()
        return Success(format_context_window(turns))

    def _append_next(self, session_id: str, speaker: str, content: str) -> Result:
        """Assign the next sequence number and append in one critical section."""
        with self._session_lock(session_id):
            try:
                turns = self.event_log.get_turns(session_id, 0)
                next_seq = max((t.sequence_number for t in turns), default=0) + 1
                turn = Turn(session_id=session_id, sequence_number=next_seq, speaker=speaker, content=content)
                self.event_log.append(turn)
            except Exception as e:
                return Failure(f"Failed to append event: {e}")
        self._debug(f"Appended turn {next_seq} ({speaker}) to session {session_id}")
        return Success(turn)

    def process_message(self, session_id: str, user_text: str, model, temperature: float) -> Result:
        """
        Record user_text, ask model for a reply over the whole session, record the reply.

        Args:
            session_id: Conversation identifier.
            user_text: The user's message.
            model: Any object with a ``name`` and ``generate(prompt, temperature, max_tokens)``
                returning Success/Failure.
            temperature: Sampling temperature for this call.

        Returns:
            Success(reply text), or Failure(reason) if appending, reading or
            generation failed. Only the user's turn is recorded when generation fails.
        """
        appended = self._append_next(session_id, USER_SPEAKER, user_text)
        if isinstance(appended, Failure):
            return appended

        window = self.reconstruct_window(session_id)
        if isinstance(window, Failure):
            return window
        context_window = window.value if isinstance(window, Success) else ""

        try:
            result = model.generate(prompt=context_window, temperature=temperature, max_tokens=self.max_tokens)
        except Exception as e:
            return Failure(f"Failed to generate AI response: {e}")
        if isinstance(result, Failure):
            return Failure(f"Failed to generate AI response: {result.reason}")
        reply = result.value if isinstance(result, Success) else None
        if not isinstance(reply, str) or not reply.strip():
            return Failure("Failed to generate AI response: model returned no response text")

        appended = self._append_next(session_id, getattr(model, "name", type(model).__name__), reply)
        if isinstance(appended, Failure):
            return appended
        return Success(reply)

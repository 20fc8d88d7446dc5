# llminster: Filesystem helpers (JSON / JSONL persistence, hashing, text output, and the access-wait used before reading a freshly written prompt file).

import hashlib
import json
import pathlib
import time
from typing import Any, Callable, List, Optional

from .errors import FileAccessTimeout


def write_json(path: pathlib.Path, obj: Any) -> None:
    """Atomically write a JSON object to path (UTF-8, pretty-printed)."""
    tmp = path.with_suffix(path.suffix + ".tmp")
    path.parent.mkdir(parents=True, exist_ok=True)
    with tmp.open("w", encoding="utf-8") as f:
        json.dump(obj, f, indent=2, ensure_ascii=False)
    tmp.replace(path)


def append_jsonl(path: pathlib.Path, obj: Any) -> None:
    """Append a single JSON object as one line to a JSONL file (creating parents)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as f:
        f.write(json.dumps(obj, ensure_ascii=False) + "\n")


# Tolerant line-by-line parser; a torn last line from a crash is skipped rather than poisoning the log.
def read_jsonl(path: pathlib.Path) -> List[Any]:
    """Read a JSONL file into a list of parsed objects; returns [] if missing."""
    if not path.exists():
        return []
    lines: List[Any] = []
    with path.open("r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                lines.append(json.loads(line))
            except json.JSONDecodeError:
                continue
    return lines


def sha256_bytes(data: bytes) -> str:
    """Compute a lowercase hex sha256 digest for the provided bytes."""
    h = hashlib.sha256()
    h.update(data)
    return h.hexdigest()


def sha256_text(text: str) -> str:
    """Hex sha256 of the UTF-8 encoding of text."""
    return sha256_bytes(text.encode("utf-8"))


def read_text(path: pathlib.Path) -> str:
    with path.open("r", encoding="utf-8") as f:
        return f.read()


def write_text(path: pathlib.Path, content: str) -> None:
    """Overwrite path with content (creating parents)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        f.write(content)


def append_text(path: pathlib.Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as f:
        f.write(content)


def wait_for_file_access(
    path: pathlib.Path,
    max_attempts: int = 10,
    delay_ms: int = 100,
    log: Optional[Callable[[str], None]] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    """
    Block until path can be opened for read+write, tolerating editors that are still flushing.

    Args:
        path: File to open.
        max_attempts: Number of open attempts before giving up.
        delay_ms: Pause between attempts.
        log: Optional debug sink for retry messages.
        sleep: Injected for tests.

    Raises:
        FileNotFoundError: If the file disappeared (not retried).
        FileAccessTimeout: If every attempt failed.
    """
    for attempt in range(1, max_attempts + 1):
        try:
            with path.open("r+b"):
                if log:
                    log(f"Accessed file {path}")
                return
        except FileNotFoundError:
            raise
        except OSError:
            if log:
                log(f"File {path} is locked. Attempt {attempt} of {max_attempts}. Retrying in {delay_ms}ms.")
            sleep(delay_ms / 1000.0)
    raise FileAccessTimeout(f"Unable to access file {path} after {max_attempts} attempts.")

# llminster: Console/file logging sink injected into the watcher and the conversation engine. Wraps a stdlib logger with a console handler and a daily-rotating file under logs/, opened at startup and flushed at shutdown.

import logging
import logging.handlers
import pathlib
import sys
from typing import Optional

from .config import LOG_DIR, LOG_LEVEL


class Context:
    """
    Thin wrapper around console I/O and logging used by llminster.

    Business logic never touches logging globals directly; it receives a Context.
    Call open() before use and close() on shutdown so file handlers are flushed.
    """

    def __init__(self, name: str = "llminster", log_dir: Optional[str] = None, level: str = LOG_LEVEL) -> None:
        self.name = name
        self.log_dir = pathlib.Path(log_dir or LOG_DIR or "logs")
        self.level = getattr(logging, level, logging.DEBUG)
        self.logger = logging.getLogger(name)
        self._handlers: list = []

    def open(self) -> "Context":
        """Attach console and rotating file handlers. Safe to call twice."""
        if self._handlers:
            return self
        self.logger.setLevel(self.level)
        self.logger.propagate = False

        self.log_dir.mkdir(parents=True, exist_ok=True)
        fh = logging.handlers.TimedRotatingFileHandler(
            self.log_dir / f"{self.name}.log", when="midnight", backupCount=14, encoding="utf-8"
        )
        fh.setLevel(self.level)
        fh.setFormatter(logging.Formatter("%(asctime)s - %(levelname)s - %(name)s - %(message)s"))

        ch = logging.StreamHandler()
        ch.setLevel(max(self.level, logging.INFO))
        ch.setFormatter(logging.Formatter("[%(levelname)s] %(message)s"))

        for h in (fh, ch):
            self.logger.addHandler(h)
            self._handlers.append(h)
        return self

    def close(self) -> None:
        """Flush and detach the handlers added by open()."""
        for h in self._handlers:
            try:
                h.flush()
                h.close()
            finally:
                self.logger.removeHandler(h)
        self._handlers = []

    def __enter__(self) -> "Context":
        return self.open()

    def __exit__(self, *exc) -> None:
        self.close()

    def send_to_user(self, message: str) -> None:
        """Send a user-facing message to stdout."""
        print(message)

    def log(self, message: str) -> None:
        self.logger.info(message)

    def debug(self, message: str) -> None:
        self.logger.debug(message)

    def warning(self, message: str) -> None:
        self.logger.warning(message)

    def error_message(self, message: str, exc_info: bool = False) -> None:
        """Log an error; pass exc_info=True from an except block to include the traceback."""
        self.logger.error(message, exc_info=exc_info)

    def fatal(self, message: str, exc_info: bool = False) -> None:
        self.logger.critical(message, exc_info=exc_info)
        if not self._handlers:
            print(f"Error: {message}", file=sys.stderr)

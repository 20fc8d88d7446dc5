# llminster: CLI entrypoint for the console_script target. Parses a small set of flags by hand, loads the config (fatal on errors), then runs the directory watcher or the chat REPL.

import pathlib
import signal
import sys
import threading
import uuid
from typing import Dict, List, Optional

from .chat import ChatRepl
from .config import LOG_DIR, find_config_path, load_config
from .context import Context
from .conversation import ConversationOrchestrator
from .errors import ConfigError
from .eventlog import JsonlEventLog
from .models import AppConfig
from .router import ProviderRouter
from .watcher import Watcher

USAGE = """Usage:
  llminster [-c PATH|--config PATH] [watch_dir]
  llminster chat [-c PATH] [--session ID] [--alias ALIAS]

Options:
  -c, --config PATH   Config file (YAML or JSON). Default: $LLMINSTER_CONFIG, then config.yaml/config.json in cwd.
  --session ID        Chat session to resume (default: a new random id).
  --alias ALIAS       Model alias for chat (default: the config default_alias).
Environment:
  LLMINSTER_CONFIG, LLMINSTER_LOG_LEVEL, LLMINSTER_LOG_DIR"""

_VALUE_FLAGS = {"-c": "config", "--config": "config", "--session": "session", "--alias": "alias"}


def parse_args(args: List[str]) -> Dict[str, Optional[str]]:
    """
    Minimal flag parser: supports "--flag VALUE" and "--flag=VALUE"; the first non-flag is the positional.

    Raises:
        ValueError: On unknown options or a flag missing its value.
    """
    opts: Dict[str, Optional[str]] = {"command": "watch", "config": None, "session": None, "alias": None, "positional": None}
    if args and args[0] == "chat":
        opts["command"] = "chat"
        args = args[1:]
    i = 0
    while i < len(args):
        a = args[i]
        if a in ("-h", "--help"):
            opts["command"] = "help"
            return opts
        if a in _VALUE_FLAGS:
            if i + 1 >= len(args):
                raise ValueError(f"{a} requires a value")
            opts[_VALUE_FLAGS[a]] = args[i + 1]
            i += 2
            continue
        if a.startswith("--") and "=" in a:
            flag, value = a.split("=", 1)
            if flag not in _VALUE_FLAGS:
                raise ValueError(f"unknown option: {flag}")
            opts[_VALUE_FLAGS[flag]] = value
            i += 1
            continue
        if a.startswith("-"):
            raise ValueError(f"unknown option: {a}")
        if opts["positional"] is None:
            opts["positional"] = a
        i += 1
    return opts


def _load(opts: Dict[str, Optional[str]]) -> AppConfig:
    overrides = {"watch_directory": opts.get("positional")} if opts["command"] == "watch" else None
    return load_config(find_config_path(opts.get("config")), overrides=overrides)


def run_watch(config: AppConfig, ctx: Context) -> None:
    """Run the watcher on a background thread until ENTER, EOF, Ctrl+C or SIGTERM."""
    stop = threading.Event()
    watcher = Watcher(config, ctx)
    worker = threading.Thread(target=watcher.run, args=(stop,), name="llminster-watcher")
    worker.start()

    try:
        signal.signal(signal.SIGTERM, lambda *_: stop.set())
    except ValueError:
        # not on the main thread
        pass

    try:
        if sys.stdin is not None and sys.stdin.isatty():
            ctx.send_to_user("Press ENTER to exit.")
            input()
        else:
            while worker.is_alive() and not stop.wait(0.5):
                pass
    except (EOFError, KeyboardInterrupt):
        pass
    finally:
        stop.set()
        worker.join()
    ctx.log("Application Exited Gracefully.")


def run_chat(config: AppConfig, ctx: Context, session_id: Optional[str], alias: Optional[str]) -> None:
    event_log = JsonlEventLog(pathlib.Path(config.watch_directory) / ".sessions")
    router = ProviderRouter(config.providers, config.default_alias, ctx=ctx)
    orchestrator = ConversationOrchestrator(event_log, ctx=ctx, max_tokens=config.generation.max_tokens)
    repl = ChatRepl(
        orchestrator,
        router,
        session_id=session_id or uuid.uuid4().hex,
        alias=alias or config.default_alias,
        temperature=config.generation.temperature,
        ctx=ctx,
    )
    repl.run()


def main(argv: Optional[List[str]] = None) -> None:
    """
    llminster CLI entrypoint.

    A configuration error is fatal: it is reported on stderr and the process
    exits with status 1 before anything is watched.
    """
    try:
        opts = parse_args(sys.argv[1:] if argv is None else argv)
    except ValueError as e:
        print(f"error: {e}", file=sys.stderr)
        raise SystemExit(2)
    if opts["command"] == "help":
        print(USAGE)
        return

    try:
        config = _load(opts)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        raise SystemExit(1)

    ctx = Context(log_dir=LOG_DIR or config.log_dir).open()
    try:
        if opts["command"] == "chat":
            run_chat(config, ctx, opts.get("session"), opts.get("alias"))
        else:
            run_watch(config, ctx)
    except Exception as e:
        ctx.fatal(f"Application terminated unexpectedly: {e}", exc_info=True)
        raise SystemExit(1)
    finally:
        ctx.close()


if __name__ == "__main__":
    main()

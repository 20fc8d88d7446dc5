# llminster: File pipeline. watchdog notifications are debounced on the observer thread and handed to a worker pool; each worker waits for the file, hashes it, claims the hash, parses the directive, renders templates, asks the routed model, then writes <name>.answer.md and appends to <name>.context.md.

import os
import pathlib
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .config import OUTPUT_SUFFIXES, PROMPT_EXTENSION, TEMPLATE_EXTENSION
from .context import Context
from .debounce import Debouncer
from .directives import DirectiveMode, parse_directive, strip_directives
from .errors import ProviderError
from .fs import append_text, read_text, sha256_text, wait_for_file_access, write_text
from .hashes import ProcessedHashes
from .models import AppConfig
from .results import Failure
from .router import ProviderRouter
from .templates import render_template

KIND_PROMPT = "prompt"
KIND_TEMPLATE = "template"


def classify(path: pathlib.Path) -> Optional[str]:
    """Return KIND_PROMPT for .q, KIND_TEMPLATE for .razorq, None for anything else (including our own outputs)."""
    name = path.name.lower()
    if name.endswith(OUTPUT_SUFFIXES):
        return None
    suffix = path.suffix.lower()
    if suffix == PROMPT_EXTENSION:
        return KIND_PROMPT
    if suffix == TEMPLATE_EXTENSION:
        return KIND_TEMPLATE
    return None


def answer_path(path: pathlib.Path) -> pathlib.Path:
    return path.with_name(f"{path.stem}.answer.md")


def context_path(path: pathlib.Path) -> pathlib.Path:
    return path.with_name(f"{path.stem}.context.md")


def format_context_entry(question: str, answer: str, model_name: str) -> str:
    """One transcript block: question, attributed answer, horizontal rule."""
    return (
        f"User:\n\n{question}\n\n"
        f"AI Assistant ({model_name}):\n\n{answer}\n\n"
        "---\n\n"
    )


class _PromptEventHandler(FileSystemEventHandler):
    """Forwards created/modified/moved file events to the Watcher; directories are ignored."""

    def __init__(self, watcher: "Watcher") -> None:
        super().__init__()
        self.watcher = watcher

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.watcher.on_event(os.fsdecode(event.src_path))

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.watcher.on_event(os.fsdecode(event.src_path))

    def on_moved(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.watcher.on_event(os.fsdecode(event.dest_path))


class Watcher:
    """
    Turns filesystem activity in config.watch_directory into answers.

    Per-file failures are logged and isolated; they never stop the loop. The
    idempotency policy is the same for .q and .razorq: the content hash is
    claimed before generation, released again on any failure so the unchanged
    file can be retried, and persisted only after the outputs are written.
    """

    def __init__(
        self,
        config: AppConfig,
        ctx: Context,
        router: Optional[ProviderRouter] = None,
        hashes: Optional[ProcessedHashes] = None,
        debouncer: Optional[Debouncer] = None,
        observer_factory: Callable[[], object] = Observer,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config
        self.ctx = ctx
        self.watch_dir = pathlib.Path(config.watch_directory)
        self.router = router or ProviderRouter(config.providers, config.default_alias, ctx=ctx)
        self.hashes = hashes or ProcessedHashes(pathlib.Path(config.hashes_file), ctx=ctx)
        self.debouncer = debouncer or Debouncer(config.debounce_ms)
        self.observer_factory = observer_factory
        self._sleep = sleep
        self._executor: Optional[ThreadPoolExecutor] = None
        self._accepting = threading.Event()

    # ---------- Event intake ----------

    def on_event(self, path_str: str) -> Optional[Future]:
        """
        Debounce and dispatch one notification.

        Runs inline when no worker pool is active (tests, one-shot use);
        otherwise returns the Future of the submitted job.
        """
        path = pathlib.Path(path_str)
        if not self.debouncer.should_process(str(path)):
            return None
        if classify(path) is None:
            return None
        executor = self._executor
        if executor is None:
            self.process_file(path)
            return None
        if not self._accepting.is_set():
            self.ctx.debug(f"Ignoring {path.name}: shutting down")
            return None
        return executor.submit(self.process_file, path)

    # ---------- Pipeline ----------

    def process_file(self, path: pathlib.Path) -> bool:
        """
        Run the whole pipeline for one file. Returns True when an answer was written.

        Duplicate content and non-trigger files return False without error.
        """
        kind = classify(path)
        if kind is None:
            return False
        label = "Razor file" if kind == KIND_TEMPLATE else "File"
        digest: Optional[str] = None
        claimed = False
        try:
            wait_for_file_access(
                path,
                max_attempts=self.config.access_attempts,
                delay_ms=self.config.access_delay_ms,
                log=self.ctx.debug,
                sleep=self._sleep,
            )
            content = read_text(path)
            digest = sha256_text(content)

            if not self.hashes.try_mark(digest):
                self.ctx.log(f"{label} content already processed: {path.name}")
                return False
            claimed = True

            alias, body = parse_directive(content, self.config.default_alias, DirectiveMode.first)
            if kind == KIND_TEMPLATE:
                prompt = render_template(body, name=str(path))
            else:
                prompt = body

            client = self.router.get_client(alias)
            gen = self.config.generation
            result = client.generate(prompt, temperature=gen.temperature, max_tokens=gen.max_tokens)
            if isinstance(result, Failure):
                raise ProviderError(result.reason)
            answer = result.value
            if not isinstance(answer, str) or not answer.strip():
                raise ProviderError(f"{client.name} returned an empty response")

            ans_path = answer_path(path)
            ctx_path = context_path(path)
            self._write_outputs(ans_path, answer, ctx_path, format_context_entry(strip_directives(prompt), answer, client.name))

            self.ctx.log(f"Processed {label.lower()}: {path.name} using {client.name}")
            self.ctx.log(f"Answer written to: {ans_path.resolve()}")
            self.ctx.log(f"Context updated in: {ctx_path.name}")
        except Exception as e:
            if claimed and digest:
                self.hashes.discard(digest)
            self.ctx.error_message(f"Error processing {label.lower()} {path}: {e}", exc_info=True)
            return False

        self._save_hashes()
        return True

    def _write_outputs(self, ans_path: pathlib.Path, answer: str, ctx_path: pathlib.Path, entry: str) -> None:
        """
        Stage the answer next to its target, append the transcript entry, then move the answer into place.

        If the append fails the staged file is removed and any earlier answer
        file is left as it was.
        """
        staged = ans_path.with_name(ans_path.name + ".tmp")
        write_text(staged, answer)
        try:
            append_text(ctx_path, entry)
        except Exception:
            staged.unlink(missing_ok=True)
            raise
        self.ctx.debug(f"Appended Q&A to context file {ctx_path}")
        staged.replace(ans_path)

    def _save_hashes(self) -> None:
        try:
            self.hashes.save()
        except OSError as e:
            self.ctx.error_message(f"Error saving processed hashes: {e}")

    # ---------- Lifecycle ----------

    def run(self, stop_event: threading.Event) -> None:
        """
        Watch until stop_event is set, then drain in-flight work and persist hashes.

        New notifications are refused as soon as shutdown starts; jobs already
        submitted run to completion before the final save.
        """
        self.ctx.log("Application Starting")
        if not self.watch_dir.exists():
            self.watch_dir.mkdir(parents=True, exist_ok=True)
            self.ctx.log(f"Created watch directory: {self.watch_dir}")

        self.hashes.load()
        self._executor = ThreadPoolExecutor(max_workers=self.config.max_workers, thread_name_prefix="llminster")
        self._accepting.set()

        observer = self.observer_factory()
        observer.schedule(_PromptEventHandler(self), str(self.watch_dir), recursive=False)
        observer.start()
        self.ctx.log(f"Watching directory: {self.watch_dir}")
        self.ctx.log(f"Watching for new or changed {PROMPT_EXTENSION} and {TEMPLATE_EXTENSION} files.")

        try:
            # Short waits keep KeyboardInterrupt deliverable on every platform
            while not stop_event.wait(0.5):
                pass
        finally:
            self.ctx.log("Shutdown initiated.")
            self._accepting.clear()
            observer.stop()
            observer.join()
            self._executor.shutdown(wait=True)
            self._executor = None
            self._save_hashes()
            self.ctx.log("Watcher stopped.")

import json
import logging
import pathlib
import threading
from unittest import mock

from conftest import FakeClient
from watchdog.events import DirCreatedEvent, FileCreatedEvent, FileMovedEvent

from llminster.debounce import Debouncer
from llminster.fs import sha256_text
from llminster.router import ProviderRouter
from llminster.watcher import (
    KIND_PROMPT,
    KIND_TEMPLATE,
    Watcher,
    answer_path,
    classify,
    context_path,
    format_context_entry,
)


class FakeObserver:
    """Stands in for watchdog's Observer; start() replays the queued events through the handler."""

    def __init__(self, events=()):
        self.events = list(events)
        self.scheduled = []
        self.started = self.stopped = self.joined = False

    def schedule(self, handler, path, recursive=False):
        self.scheduled.append((handler, path, recursive))

    def start(self):
        self.started = True
        handler = self.scheduled[0][0]
        for event in self.events:
            handler.dispatch(event)

    def stop(self):
        self.stopped = True

    def join(self, timeout=None):
        self.joined = True


def _watcher(config, ctx, **kwargs):
    router = ProviderRouter(config.providers, config.default_alias, factories={"Fake": FakeClient}, ctx=ctx)
    kwargs.setdefault("sleep", lambda s: None)
    return Watcher(config, ctx, router=router, **kwargs)


def _write(path: pathlib.Path, text: str) -> pathlib.Path:
    path.write_text(text, encoding="utf-8")
    return path


def test_classify():
    assert classify(pathlib.Path("a.q")) == KIND_PROMPT
    assert classify(pathlib.Path("A.Q")) == KIND_PROMPT
    assert classify(pathlib.Path("report.razorq")) == KIND_TEMPLATE
    assert classify(pathlib.Path("a.answer.md")) is None
    assert classify(pathlib.Path("a.context.md")) is None
    assert classify(pathlib.Path("notes.txt")) is None


def test_output_paths_sit_next_to_the_prompt():
    p = pathlib.Path("/w/q1.q")
    assert answer_path(p) == pathlib.Path("/w/q1.answer.md")
    assert context_path(p) == pathlib.Path("/w/q1.context.md")


def test_format_context_entry():
    assert format_context_entry("What is 2+2?", "4", "gpt-4o") == (
        "User:\n\nWhat is 2+2?\n\nAI Assistant (gpt-4o):\n\n4\n\n---\n\n"
    )


def test_prompt_file_produces_answer_and_context(app_config, ctx, watch_dir):
    watcher = _watcher(app_config, ctx)
    content = "@usemodel:fast\nWhat is 2+2?"
    path = _write(watch_dir / "q1.q", content)

    assert watcher.process_file(path) is True

    assert (watch_dir / "q1.answer.md").read_text(encoding="utf-8") == "answer from fake-small"
    assert (watch_dir / "q1.context.md").read_text(encoding="utf-8") == format_context_entry(
        "What is 2+2?", "answer from fake-small", "fake-small"
    )
    assert watcher.router.get_client("fast").prompts == ["What is 2+2?"]
    saved = json.loads(pathlib.Path(app_config.hashes_file).read_text(encoding="utf-8"))
    assert saved == [sha256_text(content)]


def test_prompt_without_directive_uses_default_alias(app_config, ctx, watch_dir):
    watcher = _watcher(app_config, ctx)
    path = _write(watch_dir / "plain.q", "Explain recursion")
    assert watcher.process_file(path) is True
    assert (watch_dir / "plain.answer.md").read_text(encoding="utf-8") == "answer from fake-large"


def test_context_file_accumulates_entries(app_config, ctx, watch_dir):
    watcher = _watcher(app_config, ctx)
    path = _write(watch_dir / "q1.q", "First question")
    watcher.process_file(path)
    _write(path, "Second question")
    watcher.process_file(path)

    transcript = (watch_dir / "q1.context.md").read_text(encoding="utf-8")
    assert transcript.count("---") == 2
    assert transcript.index("First question") < transcript.index("Second question")
    assert (watch_dir / "q1.answer.md").read_text(encoding="utf-8") == "answer from fake-large"


def test_duplicate_content_is_skipped(app_config, ctx, watch_dir, caplog):
    caplog.set_level(logging.INFO)
    watcher = _watcher(app_config, ctx)
    _write(watch_dir / "a.q", "Same question")
    _write(watch_dir / "b.q", "Same question")

    assert watcher.process_file(watch_dir / "a.q") is True
    assert watcher.process_file(watch_dir / "a.q") is False
    assert watcher.process_file(watch_dir / "b.q") is False
    assert not (watch_dir / "b.answer.md").exists()
    assert "File content already processed: b.q" in caplog.text
    assert len(watcher.router.get_client("smart").prompts) == 1


def test_hashes_survive_restart(app_config, ctx, watch_dir):
    path = _write(watch_dir / "q1.q", "Persisted question")
    assert _watcher(app_config, ctx).process_file(path) is True

    restarted = _watcher(app_config, ctx)
    restarted.hashes.load()
    assert restarted.process_file(path) is False


def test_provider_failure_writes_nothing_and_releases_hash(app_config, ctx, watch_dir, caplog):
    watcher = _watcher(app_config, ctx)
    client = watcher.router.get_client("smart")
    client.error = "quota exceeded"
    content = "Will this fail?"
    path = _write(watch_dir / "q1.q", content)

    assert watcher.process_file(path) is False
    assert not (watch_dir / "q1.answer.md").exists()
    assert not (watch_dir / "q1.context.md").exists()
    assert sha256_text(content) not in watcher.hashes
    assert "quota exceeded" in caplog.text

    client.error = None
    assert watcher.process_file(path) is True


def test_empty_answer_is_failure(app_config, ctx, watch_dir):
    watcher = _watcher(app_config, ctx)
    watcher.router.get_client("smart").answer = "   "
    path = _write(watch_dir / "q1.q", "Anyone there?")
    assert watcher.process_file(path) is False
    assert not (watch_dir / "q1.answer.md").exists()
    assert len(watcher.hashes) == 0


def test_template_is_rendered_before_generation(app_config, ctx, watch_dir, caplog):
    caplog.set_level(logging.INFO)
    watcher = _watcher(app_config, ctx)
    path = _write(watch_dir / "list.razorq", "@usemodel:fast\n{% for i in range(3) %}Item {{ i }}. {% endfor %}")

    assert watcher.process_file(path) is True
    assert watcher.router.get_client("fast").prompts == ["Item 0. Item 1. Item 2. "]
    assert (watch_dir / "list.answer.md").exists()
    assert "Processed razor file: list.razorq using fake-small" in caplog.text


def test_broken_template_is_logged_and_released(app_config, ctx, watch_dir, caplog):
    watcher = _watcher(app_config, ctx)
    path = _write(watch_dir / "bad.razorq", "{{ undefined_thing }}")
    assert watcher.process_file(path) is False
    assert "Failed to render template" in caplog.text
    assert len(watcher.hashes) == 0
    assert watcher.router.get_client("smart").prompts == []


def test_outputs_and_unknown_files_are_ignored(app_config, ctx, watch_dir):
    watcher = _watcher(app_config, ctx)
    for name in ("q1.answer.md", "q1.context.md", "notes.txt"):
        assert watcher.process_file(_write(watch_dir / name, "text")) is False
    assert len(watcher.hashes) == 0


def test_locked_file_gives_up_after_configured_attempts(app_config, ctx, watch_dir, caplog, monkeypatch):
    sleeps = []
    watcher = _watcher(app_config, ctx, sleep=sleeps.append)
    path = _write(watch_dir / "q1.q", "Locked")
    real_open = pathlib.Path.open

    def locked_open(self, mode="r", *args, **kwargs):
        if mode == "r+b":
            raise PermissionError("in use by another process")
        return real_open(self, mode, *args, **kwargs)

    monkeypatch.setattr(pathlib.Path, "open", locked_open)
    assert watcher.process_file(path) is False
    assert len(sleeps) == app_config.access_attempts
    assert "Unable to access file" in caplog.text


def test_deleted_file_is_logged_not_raised(app_config, ctx, watch_dir, caplog):
    watcher = _watcher(app_config, ctx)
    assert watcher.process_file(watch_dir / "gone.q") is False
    assert "Error processing file" in caplog.text


def test_on_event_debounces_and_processes_inline(app_config, ctx, watch_dir):
    watcher = _watcher(app_config, ctx, debouncer=Debouncer(500, clock=lambda: 100.0))
    path = _write(watch_dir / "q1.q", "First")

    watcher.on_event(str(path))
    _write(path, "Second")
    watcher.on_event(str(path))

    assert watcher.router.get_client("smart").prompts == ["First"]


def test_on_event_refuses_work_during_shutdown(app_config, ctx, watch_dir):
    watcher = _watcher(app_config, ctx)
    watcher._executor = mock.Mock()
    path = _write(watch_dir / "q1.q", "Too late")
    assert watcher.on_event(str(path)) is None
    watcher._executor.submit.assert_not_called()


def test_run_dispatches_events_and_drains_on_stop(app_config, ctx, watch_dir):
    created = _write(watch_dir / "created.q", "Created question")
    moved = _write(watch_dir / "moved.q", "Moved question")
    observer = FakeObserver(
        [
            FileCreatedEvent(str(created)),
            FileMovedEvent(str(watch_dir / "moved.tmp"), str(moved)),
            DirCreatedEvent(str(watch_dir / "subdir.q")),
            FileCreatedEvent(str(watch_dir / "created.answer.md")),
        ]
    )
    watcher = _watcher(app_config, ctx, observer_factory=lambda: observer)
    stop = threading.Event()
    stop.set()

    watcher.run(stop)

    assert observer.scheduled[0][1:] == (str(watch_dir), False)
    assert observer.started and observer.stopped and observer.joined
    assert (watch_dir / "created.answer.md").exists()
    assert (watch_dir / "moved.answer.md").exists()
    assert sorted(watcher.router.get_client("smart").prompts) == ["Created question", "Moved question"]
    assert len(json.loads(pathlib.Path(app_config.hashes_file).read_text(encoding="utf-8"))) == 2
    assert watcher._executor is None


def test_run_creates_missing_watch_directory(app_config, ctx, tmp_path):
    config = app_config.model_copy(update={"watch_directory": str(tmp_path / "new" / "dir")})
    stop = threading.Event()
    stop.set()
    _watcher(config, ctx, observer_factory=FakeObserver).run(stop)
    assert (tmp_path / "new" / "dir").is_dir()


def test_transcript_failure_leaves_no_answer_file(app_config, ctx, watch_dir, monkeypatch, caplog):
    watcher = _watcher(app_config, ctx)
    content = "What is 2+2?"
    path = _write(watch_dir / "q1.q", content)

    def disk_full(path, text):
        raise OSError("disk full")

    monkeypatch.setattr("llminster.watcher.append_text", disk_full)
    assert watcher.process_file(path) is False

    assert sorted(p.name for p in watch_dir.iterdir()) == ["q1.q"]
    assert sha256_text(content) not in watcher.hashes
    assert "disk full" in caplog.text


def test_transcript_failure_keeps_previous_answer(app_config, ctx, watch_dir, monkeypatch):
    watcher = _watcher(app_config, ctx)
    path = _write(watch_dir / "q1.q", "First question")
    assert watcher.process_file(path) is True
    previous = (watch_dir / "q1.answer.md").read_text(encoding="utf-8")

    def disk_full(path, text):
        raise OSError("disk full")

    monkeypatch.setattr("llminster.watcher.append_text", disk_full)
    watcher.router.get_client("smart").answer = "a newer answer"
    _write(path, "Second question")
    assert watcher.process_file(path) is False
    assert (watch_dir / "q1.answer.md").read_text(encoding="utf-8") == previous
    assert not (watch_dir / "q1.answer.md.tmp").exists()

import pathlib
from typing import List, Optional

import pytest

from llminster.client import BaseLlmClient
from llminster.context import Context
from llminster.errors import ProviderError
from llminster.models import AppConfig
from llminster.results import Failure, Success


class FakeModel:
    """Model capability double returning a canned reply (or failure) and recording prompts."""

    def __init__(self, reply: Optional[str] = "Hi there!", name: str = "fake-model", fail: Optional[str] = None) -> None:
        self.reply = reply
        self.name = name
        self.fail = fail
        self.calls: List[dict] = []

    def generate(self, prompt: str, temperature: float, max_tokens: int = 4096):
        self.calls.append({"prompt": prompt, "temperature": temperature, "max_tokens": max_tokens})
        if self.fail is not None:
            return Failure(self.fail)
        return Success(self.reply)


class FakeClient(BaseLlmClient):
    """Provider client double served by the router through an injected factory."""

    def __init__(self, api_key: str, model: str, ctx=None) -> None:
        self.api_key = api_key
        self.name = model
        self.prompts: List[str] = []
        self.answer = f"answer from {model}"
        self.error: Optional[str] = None

    def generate_content(self, prompt, options):
        self.prompts.append(prompt)
        if self.error:
            raise ProviderError(self.error)
        return self.answer


PROVIDERS = {
    "Fake": {"api_key": "sk-test", "models": {"fake-large": "smart", "fake-small": "Fast"}},
}


@pytest.fixture
def ctx(tmp_path: pathlib.Path) -> Context:
    # Not opened: records propagate to the root logger so caplog can see them.
    return Context(name="llminster-test", log_dir=str(tmp_path / "logs"))


@pytest.fixture
def watch_dir(tmp_path: pathlib.Path) -> pathlib.Path:
    d = tmp_path / "watch"
    d.mkdir()
    return d


@pytest.fixture
def app_config(tmp_path: pathlib.Path, watch_dir: pathlib.Path) -> AppConfig:
    return AppConfig.model_validate(
        {
            "watch_directory": str(watch_dir),
            "default_alias": "smart",
            "providers": PROVIDERS,
            "hashes_file": str(tmp_path / "processed_hashes.json"),
            "log_dir": str(tmp_path / "logs"),
            "access_attempts": 3,
            "access_delay_ms": 0,
        }
    )

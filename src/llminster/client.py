# llminster: Language-model capability. BaseLlmClient turns provider exceptions into explicit Success/Failure results; the concrete clients map a single prompt onto OpenAI Chat Completions, Anthropic Messages and Gemini generateContent over plain HTTP.

import random
import time
from typing import Any, Dict, List, Optional

import requests

from .context import Context
from .errors import ProviderError
from .models import GenerationOptions
from .results import Failure, Result, Success

DEFAULT_TIMEOUT = 240
MAX_RETRIES = 3


class BaseLlmClient:
    """
    Common contract for every model backend.

    Subclasses implement generate_content (raise on failure). Callers that want
    a result value instead of an exception use generate.
    """

    name: str = "unknown"

    def generate_content(self, prompt: str, options: GenerationOptions) -> str:
        raise NotImplementedError

    def generate(self, prompt: str, temperature: float, max_tokens: int = 4096) -> Result:
        """
        Send prompt and return Success(text) or Failure(reason).

        A Success may carry an empty string when the provider answered without
        text; deciding whether that is usable is up to the caller.
        """
        try:
            options = GenerationOptions(temperature=temperature, max_tokens=max_tokens)
        except ValueError as e:
            return Failure(f"Invalid generation options: {e}")
        try:
            return Success(self.generate_content(prompt, options))
        except (ProviderError, requests.RequestException) as e:
            return Failure(str(e))
        except Exception as e:
            return Failure(f"Unexpected error from {self.name}: {e!r}")


class HttpLlmClient(BaseLlmClient):
    """requests-based client with bounded retries on timeouts, 429 and HTTP 5xx."""

    provider = "http"

    def __init__(self, api_key: str, model: str, base_url: str, ctx: Optional[Context] = None, timeout: int = DEFAULT_TIMEOUT) -> None:
        if not (api_key and model):
            raise ProviderError(f"{self.provider} client requires an API key and a model name.")
        self.api_key = api_key
        self.model = model
        self.name = model
        self.base_url = base_url.rstrip("/")
        self.ctx = ctx
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({"Content-Type": "application/json"})
        self._sleep = time.sleep

    def _log(self, message: str) -> None:
        if self.ctx:
            self.ctx.debug(message)

    def _post(self, url: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        POST payload and return the decoded JSON body.

        Retries timeouts, 429 and 5xx up to MAX_RETRIES times with jittered
        exponential backoff. Other 4xx responses fail immediately.

        Raises:
            ProviderError: On a non-retryable status, exhausted retries, or a non-JSON body.
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                r = self.session.post(url, json=payload, timeout=self.timeout)
            except requests.exceptions.Timeout as e:
                if attempt <= MAX_RETRIES:
                    delay = self._backoff(attempt)
                    self._log(f"{self.provider} timeout on attempt {attempt}; retrying in {delay:.2f}s...")
                    self._sleep(delay)
                    continue
                raise ProviderError(f"{self.provider} API timeout after {attempt} attempt(s): {e}") from e

            if r.status_code == 200:
                break
            if (r.status_code >= 500 or r.status_code == 429) and attempt <= MAX_RETRIES:
                delay = self._backoff(attempt)
                self._log(f"{self.provider} attempt {attempt} received {r.status_code}; retrying in {delay:.2f}s...")
                self._sleep(delay)
                continue
            # Surface the first 2KB of body for diagnostics
            raise ProviderError(f"{self.provider} API error {r.status_code}: {r.text[:2000]}")

        try:
            return r.json()
        except ValueError as e:
            raise ProviderError(f"{self.provider} API returned a non-JSON body: {r.text[:500]}") from e

    def _expect(self, value: Any, kind: type, what: str) -> Any:
        """Return value if it is an instance of kind, otherwise raise ProviderError naming the bad part."""
        if not isinstance(value, kind):
            raise ProviderError(f"{self.provider} API returned an unexpected {what}: {str(value)[:200]}")
        return value

    @staticmethod
    def _backoff(attempt: int) -> float:
        base_delay = [1.0, 2.0, 4.0][min(attempt - 1, 2)]
        return base_delay * random.uniform(0.5, 1.5)


class OpenAIClient(HttpLlmClient):
    provider = "OpenAI"

    def __init__(self, api_key: str, model: str, base_url: str = "https://api.openai.com/v1", **kwargs) -> None:
        super().__init__(api_key, model, base_url, **kwargs)
        self.session.headers.update({"Authorization": f"Bearer {api_key}"})

    def generate_content(self, prompt: str, options: GenerationOptions) -> str:
        payload = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": options.temperature,
            "max_completion_tokens": options.max_tokens,
        }
        resp = self._expect(self._post(f"{self.base_url}/chat/completions", payload), dict, "response body")
        choices = self._expect(resp.get("choices") or [], list, "choices list")
        if not choices:
            return ""
        choice = self._expect(choices[0], dict, "choice")
        message = self._expect(choice.get("message") or {}, dict, "message")
        content = message.get("content")
        return content.strip() if isinstance(content, str) else ""


class AnthropicClient(HttpLlmClient):
    provider = "Anthropic"
    api_version = "2023-06-01"

    def __init__(self, api_key: str, model: str, base_url: str = "https://api.anthropic.com/v1", **kwargs) -> None:
        super().__init__(api_key, model, base_url, **kwargs)
        self.session.headers.update({"x-api-key": api_key, "anthropic-version": self.api_version})

    def generate_content(self, prompt: str, options: GenerationOptions) -> str:
        payload = {
            "model": self.model,
            "max_tokens": options.max_tokens,
            "temperature": min(options.temperature, 1.0),
            "messages": [{"role": "user", "content": prompt}],
        }
        resp = self._expect(self._post(f"{self.base_url}/messages", payload), dict, "response body")
        chunks: List[str] = []
        for block in self._expect(resp.get("content") or [], list, "content list"):
            if isinstance(block, dict) and block.get("type") == "text" and isinstance(block.get("text"), str):
                chunks.append(block["text"])
        return "".join(chunks).strip()


class GeminiClient(HttpLlmClient):
    provider = "Google"

    def __init__(self, api_key: str, model: str, base_url: str = "https://generativelanguage.googleapis.com/v1beta", **kwargs) -> None:
        super().__init__(api_key, model, base_url, **kwargs)
        self.session.headers.update({"x-goog-api-key": api_key})

    def generate_content(self, prompt: str, options: GenerationOptions) -> str:
        payload = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": options.temperature,
                "maxOutputTokens": options.max_tokens,
            },
        }
        resp = self._expect(self._post(f"{self.base_url}/models/{self.model}:generateContent", payload), dict, "response body")
        candidates = self._expect(resp.get("candidates") or [], list, "candidates list")
        if not candidates:
            return ""
        candidate = self._expect(candidates[0], dict, "candidate")
        content = self._expect(candidate.get("content") or {}, dict, "candidate content")
        parts = self._expect(content.get("parts") or [], list, "parts list")
        return "".join(p["text"] for p in parts if isinstance(p, dict) and isinstance(p.get("text"), str)).strip()

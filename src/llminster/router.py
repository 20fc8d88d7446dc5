# llminster: Resolves a directive alias to a (provider, model) pair and hands back a client bound to that provider's key. This is the only place that knows which client class serves which provider name.

import threading
from typing import Callable, Dict, Optional, Tuple

from .client import AnthropicClient, BaseLlmClient, GeminiClient, OpenAIClient
from .context import Context
from .errors import AliasResolutionError, UnsupportedProviderError
from .models import ProviderConfig

ClientFactory = Callable[..., BaseLlmClient]

DEFAULT_FACTORIES: Dict[str, ClientFactory] = {
    "openai": OpenAIClient,
    "anthropic": AnthropicClient,
    "google": GeminiClient,
}


def build_alias_lookup(providers: Dict[str, ProviderConfig]) -> Dict[str, Tuple[str, str]]:
    """Flatten provider configs into lowercase alias -> (provider_name, model_name); later entries win."""
    lookup: Dict[str, Tuple[str, str]] = {}
    for provider_name, provider_config in providers.items():
        for model_name, alias in provider_config.models.items():
            lookup[alias.lower()] = (provider_name, model_name)
    return lookup


class ProviderRouter:
    def __init__(
        self,
        providers: Dict[str, ProviderConfig],
        default_alias: str,
        factories: Optional[Dict[str, ClientFactory]] = None,
        ctx: Optional[Context] = None,
    ) -> None:
        self.providers = providers
        self.default_alias = default_alias
        self.alias_lookup = build_alias_lookup(providers)
        self.factories = {k.lower(): v for k, v in (factories or DEFAULT_FACTORIES).items()}
        self.ctx = ctx
        self._lock = threading.Lock()
        self._clients: Dict[Tuple[str, str], BaseLlmClient] = {}

    def resolve(self, alias: str) -> Tuple[str, str]:
        """
        Map alias (case-insensitive) to (provider_name, model_name), falling back to the default alias.

        Raises:
            AliasResolutionError: If neither alias nor the default alias is known.
        """
        hit = self.alias_lookup.get((alias or "").strip().lower())
        if hit is None:
            hit = self.alias_lookup.get(self.default_alias.strip().lower())
            if hit is None:
                raise AliasResolutionError(f"Invalid alias and no valid default alias: {alias}")
            if self.ctx and alias:
                self.ctx.warning(f"Unknown model alias {alias!r}; using default alias {self.default_alias!r}")
        return hit

    def get_client(self, alias: str) -> BaseLlmClient:
        """
        Return a cached client for the resolved (provider, model) pair.

        Raises:
            AliasResolutionError: See resolve.
            UnsupportedProviderError: If no factory serves the provider name.
        """
        provider_name, model_name = self.resolve(alias)
        key = (provider_name, model_name)
        with self._lock:
            client = self._clients.get(key)
            if client is not None:
                return client
            factory = self.factories.get(provider_name.lower())
            if factory is None:
                raise UnsupportedProviderError(f"Unsupported provider: {provider_name}")
            client = factory(self.providers[provider_name].api_key, model_name, ctx=self.ctx)
            self._clients[key] = client
            return client

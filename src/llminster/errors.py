# llminster: Exception hierarchy shared by the watcher pipeline, the provider router and the clients.


class LLMinsterError(Exception):
    """Base class for every error raised by llminster."""


class ConfigError(LLMinsterError):
    """Raised at startup when the configuration file is missing or invalid."""


class FileAccessTimeout(LLMinsterError):
    """Raised when a watched file stays locked after all access attempts."""


class AliasResolutionError(LLMinsterError):
    """Raised when neither the requested alias nor the default alias resolves."""


class UnsupportedProviderError(LLMinsterError):
    """Raised when a configured provider has no client factory."""


class ProviderError(LLMinsterError):
    """Raised by provider clients on HTTP errors or unusable payloads."""


class TemplateRenderError(LLMinsterError):
    """Raised when a .razorq template cannot be rendered."""


class EventLogError(LLMinsterError):
    """Raised by event log implementations on read/append failures."""

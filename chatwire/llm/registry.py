"""
Provider registry -- maps a configured provider name to an adapter.

The rest of chatwire never imports a concrete adapter: it asks the registry
for one by the ``provider.name`` config string.  Built-in names are
``openai-compatible`` and ``google-gemini``; callers may register more.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable

from chatwire.errors import ConfigurationError
from chatwire.llm.providers.base import Provider
from chatwire.llm.providers.gemini import DEFAULT_BASE_URL as GEMINI_BASE_URL
from chatwire.llm.providers.gemini import GeminiProvider
from chatwire.llm.providers.openai_compat import DEFAULT_BASE_URL as OPENAI_BASE_URL
from chatwire.llm.providers.openai_compat import OpenAICompatProvider
from chatwire.llm.truncation import TruncationConfig

if TYPE_CHECKING:
    from chatwire.config import ProviderConfig

logger = logging.getLogger(__name__)

ProviderFactory = Callable[["ProviderConfig"], Provider]

OPENAI_COMPATIBLE = "openai-compatible"
GOOGLE_GEMINI = "google-gemini"

DEFAULT_OPENAI_MODEL = "qwen2.5-coder"
DEFAULT_GEMINI_MODEL = "gemini-2.0-flash"


class ProviderRegistry:
    """Named provider factories."""

    def __init__(self) -> None:
        self._factories: dict[str, ProviderFactory] = {}

    def register(self, name: str, factory: ProviderFactory) -> None:
        """Register *factory* under *name*.  Overwrites any existing entry."""
        self._factories[name] = factory

    def names(self) -> list[str]:
        return list(self._factories)

    def __contains__(self, name: object) -> bool:
        return name in self._factories

    def create(self, name: str, config: "ProviderConfig") -> Provider:
        """
        Build the provider registered as *name*.

        Raises ``ConfigurationError`` if *name* has not been registered.
        """
        factory = self._factories.get(name)
        if factory is None:
            raise ConfigurationError(
                f"Unknown LLM provider {name!r}. Registered: {self.names()}",
                tip="Set provider.name (or CHATWIRE_PROVIDER) to one of the registered names.",
            )
        provider = factory(config)
        logger.info("Created provider %s (model=%s)", provider.name, provider.model)
        return provider


# ---------------------------------------------------------------------------
# Built-in factories
# ---------------------------------------------------------------------------

def normalize_openai_base_url(base_url: str) -> str:
    """Strip a trailing slash and append ``/v1`` when missing."""
    base_url = base_url.rstrip("/")
    if not base_url.endswith("/v1"):
        base_url += "/v1"
    return base_url


def _openai_factory(config: "ProviderConfig") -> Provider:
    return OpenAICompatProvider(
        base_url=normalize_openai_base_url(config.api_base or OPENAI_BASE_URL),
        model=config.model or DEFAULT_OPENAI_MODEL,
        api_key=config.resolve_api_key(),
        timeout=float(config.timeout_seconds),
        strict_tool_arguments=config.strict_tool_arguments,
    )


def _gemini_factory(config: "ProviderConfig") -> Provider:
    api_key = config.resolve_api_key()
    if not api_key:
        raise ConfigurationError(
            "google-gemini provider requires an API key",
            tip=provider_help(GOOGLE_GEMINI),
        )
    return GeminiProvider(
        api_key=api_key,
        model=config.model or DEFAULT_GEMINI_MODEL,
        base_url=config.api_base or GEMINI_BASE_URL,
        timeout=float(config.timeout_seconds),
        strict_tool_arguments=config.strict_tool_arguments,
    )


def default_registry() -> ProviderRegistry:
    """Return a new registry holding the built-in providers."""
    registry = ProviderRegistry()
    registry.register(OPENAI_COMPATIBLE, _openai_factory)
    registry.register(GOOGLE_GEMINI, _gemini_factory)
    return registry


# ---------------------------------------------------------------------------
# Module-level helpers
# ---------------------------------------------------------------------------

def validate_provider_config(
    config: "ProviderConfig",
    registry: ProviderRegistry | None = None,
) -> list[str]:
    """Return human-readable problems with *config*; empty when usable."""
    registry = registry or default_registry()
    errors: list[str] = []

    if config.name not in registry:
        errors.append(
            f"Unknown LLM provider: {config.name} (registered: {', '.join(registry.names())})"
        )
        return errors

    if config.name == GOOGLE_GEMINI and not config.resolve_api_key():
        source = f"environment variable {config.api_key_env}" if config.api_key_env else "provider.api_key"
        errors.append(f"google-gemini provider requires an API key ({source} is empty)")

    if config.timeout_seconds <= 0:
        errors.append(f"provider.timeout_seconds must be positive, got {config.timeout_seconds}")
    if config.temperature is not None and not 0.0 <= config.temperature <= 2.0:
        errors.append(f"provider.temperature must be between 0 and 2, got {config.temperature}")
    if config.top_p is not None and not 0.0 <= config.top_p <= 1.0:
        errors.append(f"provider.top_p must be between 0 and 1, got {config.top_p}")
    if config.max_tokens is not None and config.max_tokens <= 0:
        errors.append(f"provider.max_tokens must be positive, got {config.max_tokens}")

    return errors


def create_provider(
    config: "ProviderConfig",
    registry: ProviderRegistry | None = None,
    *,
    truncation: TruncationConfig | None = None,
) -> Provider:
    """
    Validate *config* and build the provider it names.

    *truncation* bounds tool results the provider sends back to the model;
    when omitted the provider keeps its default limits.

    Raises ``ConfigurationError`` listing every validation problem.
    """
    registry = registry or default_registry()
    errors = validate_provider_config(config, registry)
    if errors:
        raise ConfigurationError(
            f"Provider {config.name} configuration errors: {'; '.join(errors)}",
            tip=provider_help(config.name),
        )
    provider = registry.create(config.name, config)
    if truncation is not None:
        provider.truncation = truncation
    return provider


def provider_help(name: str) -> str:
    """Configuration help text for the provider called *name*."""
    if name == OPENAI_COMPATIBLE:
        return (
            "OpenAI-compatible provider (OpenAI, LM Studio, vLLM, llama.cpp, ...)\n"
            "\n"
            "Settings (config file key / environment variable):\n"
            "  provider.api_base     CHATWIRE_API_BASE     default http://localhost:1234/v1\n"
            "  provider.model        CHATWIRE_MODEL        model id loaded on the server\n"
            "  provider.api_key_env  CHATWIRE_API_KEY_ENV  variable holding the bearer token\n"
            "\n"
            "Local servers usually need no key.  '/v1' is appended to the base URL\n"
            "when missing."
        )
    if name == GOOGLE_GEMINI:
        return (
            "Google Gemini provider\n"
            "\n"
            "Settings (config file key / environment variable):\n"
            "  provider.api_key_env  CHATWIRE_API_KEY_ENV  variable holding the API key (required)\n"
            "  provider.model        CHATWIRE_MODEL        default gemini-2.0-flash\n"
            "  provider.api_base     CHATWIRE_API_BASE     default " + GEMINI_BASE_URL
        )
    return f"Unknown provider: {name}"

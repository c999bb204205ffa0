"""Tests for chatwire.llm.registry."""

from __future__ import annotations

import pytest

from chatwire.config import ProviderConfig
from chatwire.errors import ConfigurationError
from chatwire.llm.providers.gemini import GeminiProvider
from chatwire.llm.providers.openai_compat import OpenAICompatProvider
from chatwire.llm.registry import (
    ProviderRegistry,
    create_provider,
    default_registry,
    normalize_openai_base_url,
    provider_help,
    validate_provider_config,
)
from chatwire.llm.truncation import TruncationConfig
from tests.mock_providers import MockProvider


class TestProviderRegistry:
    def test_builtins_registered(self):
        assert default_registry().names() == ["openai-compatible", "google-gemini"]

    def test_register_custom_factory(self):
        reg = ProviderRegistry()
        reg.register("mock", lambda config: MockProvider(model_name=config.model))
        provider = reg.create("mock", ProviderConfig(name="mock", model="m1"))
        assert isinstance(provider, MockProvider)
        assert provider.model == "m1"

    def test_register_overwrites(self):
        reg = ProviderRegistry()
        first = MockProvider()
        second = MockProvider()
        reg.register("mock", lambda config: first)
        reg.register("mock", lambda config: second)
        assert reg.create("mock", ProviderConfig()) is second

    def test_unknown_name_raises(self):
        reg = default_registry()
        with pytest.raises(ConfigurationError, match="nonexistent") as excinfo:
            reg.create("nonexistent", ProviderConfig())
        assert "openai-compatible" in excinfo.value.message
        assert excinfo.value.tip


class TestBaseUrl:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("http://127.0.0.1:1234", "http://127.0.0.1:1234/v1"),
            ("http://127.0.0.1:1234/", "http://127.0.0.1:1234/v1"),
            ("http://127.0.0.1:1234/v1", "http://127.0.0.1:1234/v1"),
            ("https://api.openai.com/v1/", "https://api.openai.com/v1"),
        ],
    )
    def test_normalize(self, raw, expected):
        assert normalize_openai_base_url(raw) == expected


class TestCreateProvider:
    async def test_openai_compatible(self, monkeypatch):
        monkeypatch.setenv("TEST_OPENAI_KEY", "sk-abc")
        config = ProviderConfig(
            name="openai-compatible",
            model="llama-3",
            api_base="http://localhost:8080",
            api_key_env="TEST_OPENAI_KEY",
            timeout_seconds=30,
        )
        provider = create_provider(config)
        try:
            assert isinstance(provider, OpenAICompatProvider)
            assert provider.base_url == "http://localhost:8080/v1"
            assert provider.model == "llama-3"
            assert provider._headers()["Authorization"] == "Bearer sk-abc"
        finally:
            await provider.aclose()

    async def test_openai_defaults(self):
        provider = create_provider(ProviderConfig())
        try:
            assert provider.base_url == "http://localhost:1234/v1"
            assert provider.model == "qwen2.5-coder"
        finally:
            await provider.aclose()

    async def test_gemini(self):
        provider = create_provider(ProviderConfig(name="google-gemini", api_key="g-key"))
        try:
            assert isinstance(provider, GeminiProvider)
            assert provider.model == "gemini-2.0-flash"
        finally:
            await provider.aclose()

    def test_gemini_without_key(self, monkeypatch):
        monkeypatch.delenv("MISSING_GEMINI_KEY", raising=False)
        config = ProviderConfig(name="google-gemini", api_key_env="MISSING_GEMINI_KEY")
        with pytest.raises(ConfigurationError, match="API key"):
            create_provider(config)

    def test_unknown_provider(self):
        with pytest.raises(ConfigurationError, match="Unknown LLM provider"):
            create_provider(ProviderConfig(name="acme"))

    def test_custom_registry(self):
        reg = ProviderRegistry()
        reg.register("mock", lambda config: MockProvider())
        assert isinstance(create_provider(ProviderConfig(name="mock"), reg), MockProvider)

    async def test_truncation_policy_applied(self):
        policy = TruncationConfig(char_limit=200, token_limit=20)
        provider = create_provider(ProviderConfig(), truncation=policy)
        try:
            assert provider.truncation is policy
        finally:
            await provider.aclose()

    async def test_default_truncation_policy(self):
        provider = create_provider(ProviderConfig())
        try:
            assert provider.truncation == TruncationConfig()
        finally:
            await provider.aclose()


class TestValidateProviderConfig:
    def test_valid_default(self):
        assert validate_provider_config(ProviderConfig()) == []

    def test_collects_all_problems(self):
        config = ProviderConfig(
            name="google-gemini",
            timeout_seconds=0,
            temperature=3.0,
            top_p=1.5,
            max_tokens=0,
        )
        errors = validate_provider_config(config)
        assert len(errors) == 5
        assert any("API key" in e for e in errors)

    def test_unknown_name(self):
        errors = validate_provider_config(ProviderConfig(name="acme"))
        assert errors == [
            "Unknown LLM provider: acme (registered: openai-compatible, google-gemini)"
        ]


class TestProviderHelp:
    def test_known_providers(self):
        assert "OpenAI-compatible" in provider_help("openai-compatible")
        assert "Gemini" in provider_help("google-gemini")

    def test_unknown(self):
        assert provider_help("acme") == "Unknown provider: acme"

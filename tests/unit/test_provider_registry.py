"""Unit tests for ProviderRegistry: construction, activation, hot-swap."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from src.models.completion import ChatMessage, CompletionRequest, MessageRole, ProviderConfig, UseCaseSettings
from src.providers.ai.claude_provider import ClaudeProvider
from src.providers.ai.registry import SUMMARIZATION, ProviderRegistry
from src.utils.errors import (
    ConfigurationError,
    InvalidConfigError,
    ProviderSwitchError,
    UnsupportedProviderError,
)
from tests.conftest import (
    FAKE_MODEL,
    FAKE_PROVIDER,
    activate_fake,
    make_completion,
    make_fake_provider,
)


def _registry_with(*providers) -> ProviderRegistry:
    """Registry whose factories return the given doubles, keyed by their name."""
    return ProviderRegistry(
        factories={p.name: (lambda p=p: p) for p in providers},
        default_models={p.name: f"{p.name}-model" for p in providers},
    )


# ======================================================================
# Constructor table
# ======================================================================


class TestConstruction:
    def test_default_table(self) -> None:
        registry = ProviderRegistry()
        assert registry.supported_providers() == ["claude", "openai", "ollama"]
        assert registry.default_model("claude") == "claude-3-5-sonnet-20241022"
        assert registry.default_model("openai") == "gpt-4-turbo"
        assert registry.default_model("ollama") == "llama3.1"

    @pytest.mark.asyncio
    async def test_unsupported_type(self) -> None:
        registry = ProviderRegistry()
        with pytest.raises(UnsupportedProviderError) as exc_info:
            await registry.create_provider("gemini", ProviderConfig(api_key="k"))
        assert "Supported: claude, openai, ollama" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_blank_key_rejected_by_provider(self) -> None:
        registry = ProviderRegistry()
        with pytest.raises(InvalidConfigError):
            await registry.create_provider("claude", ProviderConfig(api_key=""))

    def test_register_provider(self) -> None:
        registry = ProviderRegistry()
        registry.register_provider("custom", ClaudeProvider, default_model="claude-3-haiku-20240307")
        assert "custom" in registry.supported_providers()
        assert registry.default_model("custom") == "claude-3-haiku-20240307"

    def test_capabilities(self) -> None:
        registry = ProviderRegistry()
        assert "summarization" in registry.get_capabilities("ollama")
        assert registry.get_capabilities("gemini") == []

    def test_build_config_uses_registry_settings(self) -> None:
        registry = ProviderRegistry(base_urls={"ollama": "http://gpu:11434"}, timeout=12.0, max_retries=1)
        config = registry.build_config("ollama", "ollama")
        assert config.base_url == "http://gpu:11434"
        assert config.timeout == 12.0
        assert config.max_retries == 1
        assert registry.build_config("claude", "k").base_url is None


# ======================================================================
# Use-case settings
# ======================================================================


class TestRecommendedSettings:
    def test_defaults(self) -> None:
        registry = ProviderRegistry()
        summary = registry.recommended_settings(SUMMARIZATION)
        assert summary.temperature == 0.1
        assert summary.max_tokens == 1500
        assert registry.recommended_settings("creative").temperature == 0.9

    def test_overrides_merge_over_defaults(self) -> None:
        registry = ProviderRegistry(
            use_case_settings={"summarization": UseCaseSettings(temperature=0.3, max_tokens=800)}
        )
        assert registry.recommended_settings("summarization").max_tokens == 800
        assert registry.recommended_settings("analysis").max_tokens == 2000

    def test_unknown_use_case(self) -> None:
        with pytest.raises(ConfigurationError):
            ProviderRegistry().recommended_settings("poetry")


# ======================================================================
# Activation and switching
# ======================================================================


class TestActiveProvider:
    def test_current_before_activation(self) -> None:
        registry = ProviderRegistry()
        assert registry.has_active is False
        with pytest.raises(ConfigurationError):
            registry.current()

    @pytest.mark.asyncio
    async def test_activate_uses_default_model_without_health_check(self) -> None:
        provider = make_fake_provider(healthy=False)
        registry = await activate_fake(provider)

        active = registry.current()
        assert active.provider_type == FAKE_PROVIDER
        assert active.model == FAKE_MODEL
        assert active.provider is provider
        provider.initialize.assert_awaited_once()
        provider.health_check.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_switch_to_healthy_provider(self) -> None:
        first = make_fake_provider(name="first")
        second = make_fake_provider(name="second")
        registry = _registry_with(first, second)
        await registry.activate("first", ProviderConfig(api_key="k"))

        snapshot = await registry.switch_provider("second", "k2")

        assert snapshot.provider is second
        assert snapshot.model == "second-model"
        assert registry.current().provider_type == "second"
        config = second.initialize.await_args.args[0]
        assert config.api_key == "k2"

    @pytest.mark.asyncio
    async def test_unhealthy_candidate_keeps_previous(self) -> None:
        first = make_fake_provider(name="first")
        second = make_fake_provider(name="second", healthy=False)
        registry = _registry_with(first, second)
        await registry.activate("first", ProviderConfig(api_key="k"))

        with pytest.raises(ProviderSwitchError):
            await registry.switch_provider("second", "k2")

        assert registry.current().provider is first

    @pytest.mark.asyncio
    async def test_unsupported_model_keeps_previous(self) -> None:
        first = make_fake_provider(name="first")
        second = make_fake_provider(name="second", models=("m1", "m2"))
        registry = _registry_with(first, second)
        await registry.activate("first", ProviderConfig(api_key="k"))

        with pytest.raises(ProviderSwitchError):
            await registry.switch_provider("second", "k2", model="m3")

        assert registry.current().provider is first
        second.health_check.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_switch_to_ollama_with_tagged_model(self) -> None:
        client = AsyncMock()
        client.models.list = AsyncMock(return_value=MagicMock(data=[MagicMock(id="mistral:7b")]))
        registry = ProviderRegistry()

        with patch("src.providers.ai.openai_provider.openai.AsyncOpenAI", return_value=client):
            snapshot = await registry.switch_provider("ollama", "ollama", model="mistral:7b")

        assert snapshot.provider_type == "ollama"
        assert snapshot.model == "mistral:7b"
        client.chat.completions.create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_type_keeps_previous(self) -> None:
        first = make_fake_provider(name="first")
        registry = _registry_with(first)
        await registry.activate("first", ProviderConfig(api_key="k"))

        with pytest.raises(UnsupportedProviderError):
            await registry.switch_provider("gemini", "k")

        assert registry.current().provider is first

    @pytest.mark.asyncio
    async def test_in_flight_call_finishes_on_old_provider(self) -> None:
        release = asyncio.Event()

        async def _slow_completion(request):
            await release.wait()
            return make_completion("old")

        first = make_fake_provider(name="first")
        first.generate_completion = AsyncMock(side_effect=_slow_completion)
        second = make_fake_provider(name="second", content="new")
        registry = _registry_with(first, second)
        await registry.activate("first", ProviderConfig(api_key="k"))

        request = CompletionRequest(
            model="first-model",
            messages=[ChatMessage(role=MessageRole.USER, content="hi")],
            max_tokens=10,
            temperature=0.0,
        )
        snapshot = registry.current()
        in_flight = asyncio.create_task(snapshot.provider.generate_completion(request))
        await asyncio.sleep(0)

        await registry.switch_provider("second", "k2")
        release.set()
        result = await in_flight

        assert result.content == "old"
        assert registry.current().provider is second
        second.generate_completion.assert_not_awaited()


# ======================================================================
# Status
# ======================================================================


class TestProviderStatus:
    @pytest.mark.asyncio
    async def test_not_initialized(self) -> None:
        status = await ProviderRegistry().get_provider_status()
        assert status["status"] == "not_initialized"
        assert status["healthy"] is False
        assert status["provider"] is None

    @pytest.mark.asyncio
    async def test_initialized(self) -> None:
        registry = await activate_fake(make_fake_provider())
        status = await registry.get_provider_status()
        assert status["status"] == "initialized"
        assert status["provider"] == FAKE_PROVIDER
        assert status["model"] == FAKE_MODEL
        assert status["healthy"] is True
        assert "summarization" in status["info"]["capabilities"]

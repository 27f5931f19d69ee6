"""Tests for mirror/providers -- SDK clients replaced with fakes, no network."""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from config.config_loader import ModelConfig
from mirror.models import ChatOptions, ConversationMessage
from mirror.providers.anthropic import AnthropicProvider
from mirror.providers.base import MirrorAborted, ProviderError, dialogue
from mirror.providers.factory import build_all_providers, create_provider
from mirror.providers.gemini import GeminiProvider
from mirror.providers.mock import MockProvider
from mirror.providers.openai_provider import OpenAIProvider
from tests.conftest import collect


class FakeStream:
    """Async-iterable stand-in for an SDK stream."""

    def __init__(self, items, error: Exception | None = None) -> None:
        self._items = list(items)
        self._error = error
        self.closed = False

    def __aiter__(self):
        return self._gen()

    async def _gen(self):
        for item in self._items:
            yield item
        if self._error is not None:
            raise self._error

    async def close(self) -> None:
        self.closed = True


def _config(sdk: str, **overrides) -> ModelConfig:
    values = dict(
        name=f"{sdk}-test",
        sdk=sdk,
        model=f"{sdk}-model",
        api_key_env="TEST_PROVIDER_KEY",
        timeout_sec=5,
        max_tokens=256,
    )
    values.update(overrides)
    return ModelConfig(**values)


@pytest.fixture(autouse=True)
def provider_key(monkeypatch):
    monkeypatch.setenv("TEST_PROVIDER_KEY", "sk-test")


def _anthropic_events():
    return [
        SimpleNamespace(type="message_start", message=SimpleNamespace(usage=SimpleNamespace(input_tokens=11))),
        SimpleNamespace(type="content_block_delta", delta=SimpleNamespace(type="text_delta", text="Hello ")),
        SimpleNamespace(type="content_block_delta", delta=SimpleNamespace(type="text_delta", text="world")),
        SimpleNamespace(type="message_delta", usage=SimpleNamespace(output_tokens=4)),
    ]


# --- base ---

def test_dialogue_drops_system_turns():
    messages = [
        ConversationMessage("system", "ignored"),
        ConversationMessage("user", "hi"),
        ConversationMessage("assistant", "hello"),
    ]
    assert dialogue(messages) == [
        {"role": "user", "content": "hi"},
        {"role": "assistant", "content": "hello"},
    ]


def test_provider_error_names_provider():
    err = ProviderError("grok", "403 Forbidden")
    assert str(err) == "[grok] 403 Forbidden"
    assert err.provider_name == "grok"


# --- anthropic ---

async def test_anthropic_streams_text_and_usage():
    provider = AnthropicProvider(_config("anthropic"))
    stream = FakeStream(_anthropic_events())
    provider._client = MagicMock()
    provider._client.messages.create = AsyncMock(return_value=stream)

    chunks = await collect(provider.chat([ConversationMessage("user", "hi")], "be nice", ChatOptions(temperature=0)))

    assert "".join(c.delta for c in chunks) == "Hello world"
    final = chunks[-1]
    assert final.is_final is True
    assert (final.input_tokens, final.output_tokens) == (11, 4)
    assert stream.closed is True
    kwargs = provider._client.messages.create.call_args.kwargs
    assert kwargs["system"] == "be nice"
    assert kwargs["stream"] is True
    assert kwargs["temperature"] == 0
    assert kwargs["max_tokens"] == 256


def test_anthropic_missing_key(monkeypatch):
    monkeypatch.delenv("TEST_PROVIDER_KEY")
    with pytest.raises(ProviderError, match="Missing API key"):
        AnthropicProvider(_config("anthropic"))


async def test_anthropic_open_failure_is_provider_error():
    provider = AnthropicProvider(_config("anthropic"))
    provider._client = MagicMock()
    provider._client.messages.create = AsyncMock(side_effect=RuntimeError("connection refused"))

    with pytest.raises(ProviderError, match="API call failed: connection refused"):
        await collect(provider.chat([ConversationMessage("user", "hi")], "sys"))


async def test_anthropic_timeout_is_provider_error():
    provider = AnthropicProvider(_config("anthropic", timeout_sec=0.01))

    async def hang(**kwargs):
        await asyncio.sleep(10)

    provider._client = MagicMock()
    provider._client.messages.create = hang

    with pytest.raises(ProviderError, match="timed out"):
        await collect(provider.chat([ConversationMessage("user", "hi")], "sys"))


async def test_anthropic_mid_stream_failure_closes_stream():
    provider = AnthropicProvider(_config("anthropic"))
    stream = FakeStream(_anthropic_events()[:2], error=ConnectionError("reset"))
    provider._client = MagicMock()
    provider._client.messages.create = AsyncMock(return_value=stream)

    with pytest.raises(ProviderError, match="Stream failed"):
        await collect(provider.chat([ConversationMessage("user", "hi")], "sys"))
    assert stream.closed is True


async def test_anthropic_cancel_aborts_stream():
    cancel = asyncio.Event()
    cancel.set()
    provider = AnthropicProvider(_config("anthropic"))
    provider._client = MagicMock()
    provider._client.messages.create = AsyncMock(return_value=FakeStream(_anthropic_events()))

    with pytest.raises(MirrorAborted):
        await collect(provider.chat([ConversationMessage("user", "hi")], "sys", ChatOptions(cancel_event=cancel)))


# --- openai ---

def _openai_chunk(content=None, usage=None):
    choices = [SimpleNamespace(delta=SimpleNamespace(content=content))] if content is not None else []
    return SimpleNamespace(choices=choices, usage=usage)


async def test_openai_streams_text_and_usage():
    provider = OpenAIProvider(_config("openai", base_url="https://api.x.ai/v1"))
    stream = FakeStream([
        _openai_chunk("Use "),
        _openai_chunk("JSON."),
        _openai_chunk(usage=SimpleNamespace(prompt_tokens=20, completion_tokens=2)),
    ])
    provider._client = MagicMock()
    provider._client.chat.completions.create = AsyncMock(return_value=stream)

    chunks = await collect(provider.chat([ConversationMessage("user", "YAML or JSON?")], "sys"))

    assert "".join(c.delta for c in chunks) == "Use JSON."
    assert (chunks[-1].input_tokens, chunks[-1].output_tokens) == (20, 2)
    assert stream.closed is True
    kwargs = provider._client.chat.completions.create.call_args.kwargs
    assert kwargs["messages"][0] == {"role": "system", "content": "sys"}
    assert kwargs["stream_options"] == {"include_usage": True}
    assert "temperature" not in kwargs


def test_openai_uses_base_url():
    provider = OpenAIProvider(_config("openai", base_url="https://api.x.ai/v1"))
    assert str(provider._client.base_url).startswith("https://api.x.ai/v1")


# --- gemini ---

async def test_gemini_streams_text_and_usage():
    provider = GeminiProvider(_config("gemini"))
    usage = SimpleNamespace(prompt_token_count=8, candidates_token_count=3)
    stream = FakeStream([
        SimpleNamespace(text="Bonjour", usage_metadata=None),
        SimpleNamespace(text=" monde", usage_metadata=usage),
    ])
    provider._client = MagicMock()
    provider._client.aio.models.generate_content_stream = AsyncMock(return_value=stream)

    history = [
        ConversationMessage("user", "hi"),
        ConversationMessage("assistant", "hello"),
        ConversationMessage("user", "translate"),
    ]
    chunks = await collect(provider.chat(history, "translator"))

    assert "".join(c.delta for c in chunks) == "Bonjour monde"
    assert (chunks[-1].input_tokens, chunks[-1].output_tokens) == (8, 3)
    kwargs = provider._client.aio.models.generate_content_stream.call_args.kwargs
    assert [c.role for c in kwargs["contents"]] == ["user", "model", "user"]
    assert kwargs["config"].system_instruction == "translator"


# --- mock ---

async def test_mock_provider_streams_words():
    provider = MockProvider("alpha", "This is the original answer.")

    chunks = await collect(provider.chat([ConversationMessage("user", "q")], "sys"))

    assert "".join(c.delta for c in chunks).strip() == "This is the original answer."
    assert chunks[-1].is_final is True
    assert sum(1 for c in chunks if c.is_final) == 1
    assert provider.calls[0][1] == "sys"


# --- factory ---

def test_create_provider_by_sdk():
    assert isinstance(create_provider(_config("anthropic")), AnthropicProvider)
    assert isinstance(create_provider(_config("openai")), OpenAIProvider)
    assert isinstance(create_provider(_config("gemini")), GeminiProvider)


def test_create_provider_mock_keeps_name(monkeypatch):
    monkeypatch.delenv("TEST_PROVIDER_KEY")
    provider = create_provider(_config("anthropic"), mock=True)
    assert isinstance(provider, MockProvider)
    assert provider.name() == "anthropic-test"


def test_create_provider_model_override():
    provider = create_provider(_config("anthropic"), model_override="claude-haiku")
    assert provider.model_string() == "claude-haiku"


def test_create_provider_unknown_sdk():
    with pytest.raises(ProviderError, match="Unsupported sdk"):
        create_provider(_config("cohere"))


def test_build_all_providers_skips_unavailable(sample_app_config, caplog):
    sample_app_config.available_providers = {"alpha"}
    providers = build_all_providers(sample_app_config)
    assert list(providers) == ["alpha"]


def test_build_all_providers_mock_covers_every_model(sample_app_config):
    sample_app_config.available_providers = set()
    providers = build_all_providers(sample_app_config, mock=True)
    assert sorted(providers) == ["alpha", "beta"]

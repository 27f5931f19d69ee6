"""Shared pytest fixtures."""

import asyncio
from collections.abc import AsyncIterator
from pathlib import Path

import pytest
import yaml

from config.config_loader import (
    AppConfig,
    ClassifierConfig,
    HistoryConfig,
    ModelConfig,
    SessionConfig,
)
from mirror.classifier import IntentClassifier
from mirror.models import (
    BackendResult,
    ChatOptions,
    ConversationMessage,
    HistoryEntry,
    IntentResult,
    StreamChunk,
    SynthesisResult,
)
from mirror.providers.base import AIProvider, raise_if_cancelled
from mirror.providers.mock import MockProvider


class ScriptedProvider(AIProvider):
    """Test double that streams fixed chunks, optionally failing.

    ``fail_times`` makes the first N calls raise ``error`` before any chunk.
    ``fail_after`` makes every call raise ``error`` after that many chunks.
    """

    def __init__(
        self,
        provider_name: str,
        chunks: list[str] | None = None,
        *,
        delay: float = 0.0,
        fail_times: int = 0,
        fail_after: int | None = None,
        error: Exception | None = None,
        input_tokens: int | None = 10,
        output_tokens: int | None = 5,
    ) -> None:
        self._name = provider_name
        self._chunks = chunks if chunks is not None else ["Hello ", "world."]
        self._delay = delay
        self._fail_times = fail_times
        self._fail_after = fail_after
        self._error = error or RuntimeError(f"{provider_name} exploded")
        self._input_tokens = input_tokens
        self._output_tokens = output_tokens
        self.calls: list[tuple[list[ConversationMessage], str, ChatOptions | None]] = []

    def name(self) -> str:
        return self._name

    def model_string(self) -> str:
        return f"{self._name}-model"

    async def chat(
        self,
        messages: list[ConversationMessage],
        system_prompt: str,
        options: ChatOptions | None = None,
    ) -> AsyncIterator[StreamChunk]:
        self.calls.append((list(messages), system_prompt, options))
        if len(self.calls) <= self._fail_times:
            raise self._error
        for i, delta in enumerate(self._chunks):
            if self._fail_after is not None and i == self._fail_after:
                raise self._error
            raise_if_cancelled(options, self._name)
            await asyncio.sleep(self._delay)
            yield StreamChunk(delta=delta)
        yield StreamChunk(
            delta="",
            is_final=True,
            input_tokens=self._input_tokens,
            output_tokens=self._output_tokens,
        )


class FixedClassifier(IntentClassifier):
    """Returns a fixed result (or raises) and counts its calls."""

    def __init__(self, result: IntentResult | None = None, error: Exception | None = None) -> None:
        self._result = result
        self._error = error
        self.calls = 0

    async def classify(self, text: str, options: ChatOptions | None = None) -> IntentResult:
        self.calls += 1
        if self._error is not None:
            raise self._error
        assert self._result is not None
        return self._result


MIRROR_INTENT = IntentResult(
    category="opinion_advice",
    should_mirror=True,
    confidence=0.9,
    reason="Architecture choice with tradeoffs.",
)
DIRECT_INTENT = IntentResult(
    category="factual_lookup",
    should_mirror=False,
    confidence=0.95,
    reason="Simple fact.",
)


async def collect(agen) -> list:
    return [item async for item in agen]


@pytest.fixture
def mirror_classifier() -> FixedClassifier:
    return FixedClassifier(MIRROR_INTENT)


@pytest.fixture
def direct_classifier() -> FixedClassifier:
    return FixedClassifier(DIRECT_INTENT)


@pytest.fixture
def mock_provider() -> MockProvider:
    return MockProvider()


@pytest.fixture
def sample_model_config() -> ModelConfig:
    return ModelConfig(
        name="test_model",
        sdk="anthropic",
        model="test-model-1",
        api_key_env="TEST_API_KEY",
        timeout_sec=30,
        max_tokens=1024,
        base_url=None,
    )


@pytest.fixture
def sample_app_config(tmp_path: Path) -> AppConfig:
    def model(name: str) -> ModelConfig:
        return ModelConfig(
            name=name,
            sdk="mock",
            model=f"{name}-model",
            api_key_env="",
            timeout_sec=30,
            max_tokens=1024,
        )

    return AppConfig(
        session=SessionConfig(original="alpha", challenger="beta", judge="alpha"),
        models={"alpha": model("alpha"), "beta": model("beta")},
        classifier=ClassifierConfig(backend="alpha", model="alpha-model"),
        history=HistoryConfig(path=tmp_path / "history.json"),
        available_providers={"alpha", "beta"},
    )


def mock_settings_dict(history_path: Path) -> dict:
    """Settings with two offline backends; safe to load without API keys."""
    return {
        "session": {
            "original": "alpha",
            "challenger": "beta",
            "judge": "alpha",
            "judge_enabled": True,
            "intensity": "moderate",
            "auto_classify": True,
            "history_window": 20,
        },
        "models": {
            "alpha": {"sdk": "mock", "model": "alpha-model", "timeout_sec": 30, "max_tokens": 512},
            "beta": {"sdk": "mock", "model": "beta-model", "timeout_sec": 30, "max_tokens": 512},
        },
        "classifier": {"backend": "alpha", "model": "alpha-model", "confidence_threshold": 0.75},
        "history": {"path": str(history_path), "max_entries": 50},
    }


@pytest.fixture
def mock_settings(tmp_path: Path) -> Path:
    path = tmp_path / "settings.yaml"
    path.write_text(yaml.safe_dump(mock_settings_dict(tmp_path / "history.json")), encoding="utf-8")
    return path


@pytest.fixture
def sample_entry() -> HistoryEntry:
    return HistoryEntry(
        id="abc12345",
        created_at="2026-01-02T03:04:05+00:00",
        question="Should we use microservices?",
        original=BackendResult("claude", "Start with a modular monolith.", 12, 40, 1.2),
        challenger=BackendResult("gpt-4o", "The question assumes scale you do not have.", 15, 52, 1.6),
        intent=MIRROR_INTENT,
        synthesis=SynthesisResult("AGREEMENT: 70%\nBoth favour starting simple.", 70, 80, 30),
    )

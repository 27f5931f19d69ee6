"""OpenAI provider using openai SDK. Also serves OpenAI-compatible APIs via base_url."""

import asyncio
import logging
import os
import time
from collections.abc import AsyncIterator

from openai import AsyncOpenAI

from config.config_loader import ModelConfig
from mirror.models import ChatOptions, ConversationMessage, StreamChunk
from mirror.providers.base import (
    AIProvider,
    MirrorAborted,
    ProviderError,
    dialogue,
    raise_if_cancelled,
)

logger = logging.getLogger(__name__)


class OpenAIProvider(AIProvider):
    """OpenAI provider via openai SDK (xAI, DeepSeek etc. through base_url)."""

    def __init__(self, config: ModelConfig) -> None:
        self._config = config
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise ProviderError(config.name, f"Missing API key: {config.api_key_env}")
        self._client = AsyncOpenAI(api_key=api_key, base_url=config.base_url)

    def name(self) -> str:
        return self._config.name

    def model_string(self) -> str:
        return self._config.model

    async def chat(
        self,
        messages: list[ConversationMessage],
        system_prompt: str,
        options: ChatOptions | None = None,
    ) -> AsyncIterator[StreamChunk]:
        options = options or ChatOptions()
        params: dict = {
            "model": self._config.model,
            "messages": [{"role": "system", "content": system_prompt}, *dialogue(messages)],
            "max_tokens": options.max_tokens or self._config.max_tokens,
            "stream": True,
            "stream_options": {"include_usage": True},
        }
        temperature = options.temperature if options.temperature is not None else self._config.temperature
        if temperature is not None:
            params["temperature"] = temperature

        start = time.monotonic()
        try:
            stream = await asyncio.wait_for(
                self._client.chat.completions.create(**params),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise ProviderError(self._config.name, f"Request timed out after {self._config.timeout_sec}s") from exc
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc

        input_tokens: int | None = None
        output_tokens: int | None = None
        try:
            async for chunk in stream:
                raise_if_cancelled(options, self._config.name)
                choice = chunk.choices[0] if chunk.choices else None
                if choice is not None and choice.delta and choice.delta.content:
                    yield StreamChunk(delta=choice.delta.content)
                if chunk.usage:
                    input_tokens = chunk.usage.prompt_tokens
                    output_tokens = chunk.usage.completion_tokens
        except MirrorAborted:
            raise
        except Exception as exc:
            raise ProviderError(self._config.name, f"Stream failed: {exc}") from exc
        finally:
            await stream.close()

        logger.info(
            "OpenAI %s: %.2fs, %s in / %s out tokens",
            self._config.name,
            time.monotonic() - start,
            input_tokens,
            output_tokens,
        )
        yield StreamChunk(delta="", is_final=True, input_tokens=input_tokens, output_tokens=output_tokens)

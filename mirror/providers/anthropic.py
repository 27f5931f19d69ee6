"""Anthropic Claude provider using anthropic SDK with native async streaming."""

import asyncio
import logging
import os
import time
from collections.abc import AsyncIterator

import anthropic as anthropic_sdk

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


class AnthropicProvider(AIProvider):
    """Anthropic Claude provider via anthropic SDK."""

    def __init__(self, config: ModelConfig) -> None:
        self._config = config
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise ProviderError(config.name, f"Missing API key: {config.api_key_env}")
        self._client = anthropic_sdk.AsyncAnthropic(api_key=api_key)

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
            "max_tokens": options.max_tokens or self._config.max_tokens,
            "system": system_prompt,
            "messages": dialogue(messages),
            "stream": True,
        }
        temperature = options.temperature if options.temperature is not None else self._config.temperature
        if temperature is not None:
            params["temperature"] = temperature

        start = time.monotonic()
        try:
            stream = await asyncio.wait_for(
                self._client.messages.create(**params),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise ProviderError(self._config.name, f"Request timed out after {self._config.timeout_sec}s") from exc
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc

        input_tokens: int | None = None
        output_tokens: int | None = None
        try:
            async for event in stream:
                raise_if_cancelled(options, self._config.name)
                if event.type == "message_start":
                    input_tokens = event.message.usage.input_tokens
                elif event.type == "content_block_delta" and event.delta.type == "text_delta":
                    if event.delta.text:
                        yield StreamChunk(delta=event.delta.text)
                elif event.type == "message_delta" and event.usage is not None:
                    output_tokens = event.usage.output_tokens
        except MirrorAborted:
            raise
        except Exception as exc:
            raise ProviderError(self._config.name, f"Stream failed: {exc}") from exc
        finally:
            await stream.close()

        logger.info(
            "Anthropic %s: %.2fs, %s in / %s out tokens",
            self._config.name,
            time.monotonic() - start,
            input_tokens,
            output_tokens,
        )
        yield StreamChunk(delta="", is_final=True, input_tokens=input_tokens, output_tokens=output_tokens)

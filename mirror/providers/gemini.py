"""Gemini provider using google-genai SDK with native async streaming."""

import asyncio
import logging
import os
import time
from collections.abc import AsyncIterator

from google import genai
from google.genai import types as genai_types

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


def _contents(messages: list[ConversationMessage]) -> list[genai_types.Content]:
    return [
        genai_types.Content(
            role="model" if m["role"] == "assistant" else "user",
            parts=[genai_types.Part(text=m["content"])],
        )
        for m in dialogue(messages)
    ]


class GeminiProvider(AIProvider):
    """Google Gemini provider via google-genai SDK."""

    def __init__(self, config: ModelConfig) -> None:
        self._config = config
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise ProviderError(config.name, f"Missing API key: {config.api_key_env}")
        self._client = genai.Client(api_key=api_key)

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
        temperature = options.temperature if options.temperature is not None else self._config.temperature

        start = time.monotonic()
        try:
            stream = await asyncio.wait_for(
                self._client.aio.models.generate_content_stream(
                    model=self._config.model,
                    contents=_contents(messages),
                    config=genai_types.GenerateContentConfig(
                        system_instruction=system_prompt,
                        max_output_tokens=options.max_tokens or self._config.max_tokens,
                        temperature=temperature,
                    ),
                ),
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
                if chunk.text:
                    yield StreamChunk(delta=chunk.text)
                if chunk.usage_metadata:
                    input_tokens = chunk.usage_metadata.prompt_token_count
                    output_tokens = chunk.usage_metadata.candidates_token_count
        except MirrorAborted:
            raise
        except Exception as exc:
            raise ProviderError(self._config.name, f"Stream failed: {exc}") from exc

        logger.info(
            "Gemini %s: %.2fs, %s in / %s out tokens",
            self._config.name,
            time.monotonic() - start,
            input_tokens,
            output_tokens,
        )
        yield StreamChunk(delta="", is_final=True, input_tokens=input_tokens, output_tokens=output_tokens)

"""Retrying stream driver: one backend call, restarted on early failure."""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import aclosing

from mirror.models import ChatOptions, ConversationMessage, StreamChunk
from mirror.providers.base import AIProvider, MirrorAborted, raise_if_cancelled

logger = logging.getLogger(__name__)

DEFAULT_RETRIES = 1
RETRY_BASE_DELAY_SEC = 0.3


async def _backoff(delay: float, options: ChatOptions | None) -> None:
    """Sleep for ``delay`` seconds, waking early if the run is cancelled."""
    cancel_event = options.cancel_event if options is not None else None
    if cancel_event is None:
        await asyncio.sleep(delay)
        return
    try:
        await asyncio.wait_for(cancel_event.wait(), timeout=delay)
    except TimeoutError:
        return
    raise MirrorAborted("Run aborted during retry backoff")


async def stream_with_retry(
    provider: AIProvider,
    messages: list[ConversationMessage],
    system_prompt: str,
    options: ChatOptions | None = None,
    retries: int = DEFAULT_RETRIES,
    base_delay: float = RETRY_BASE_DELAY_SEC,
) -> AsyncIterator[StreamChunk]:
    """Yield the chunks of one backend call, retrying failures that happen
    before the first chunk.

    Retries re-issue the same request from scratch after
    ``base_delay * attempt`` seconds. Once a chunk has been yielded a failure
    is never retried, since a restart would repeat text the caller already has.

    Raises:
        MirrorAborted: The run's cancel token was set. Never retried.
        Exception: The last underlying error once the budget is spent.
    """
    attempt = 0
    while True:
        raise_if_cancelled(options, f"before calling {provider.name()}")
        if attempt > 0:
            logger.debug("Retrying %s (attempt %d)", provider.name(), attempt + 1)

        yielded = False
        try:
            async with aclosing(provider.chat(messages, system_prompt, options)) as stream:
                async for chunk in stream:
                    raise_if_cancelled(options, f"while streaming {provider.name()}")
                    yielded = True
                    yield chunk
            return
        except MirrorAborted:
            raise
        except Exception as exc:
            if options is not None and options.cancelled:
                raise MirrorAborted(f"Run aborted while calling {provider.name()}") from exc
            if yielded:
                logger.warning(
                    "Provider %s failed mid-stream, not retrying: %s", provider.name(), exc
                )
                raise
            if attempt >= retries:
                logger.warning(
                    "Provider %s failed after %d attempt(s): %s",
                    provider.name(), attempt + 1, exc,
                )
                raise
            attempt += 1
            logger.debug(
                "Provider %s failed (%s), backing off %.2fs",
                provider.name(), exc, base_delay * attempt,
            )
            await _backoff(base_delay * attempt, options)

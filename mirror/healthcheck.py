"""Provider health checks: ping each backend before relying on it."""

import asyncio
import logging
from contextlib import aclosing

from mirror.models import ChatOptions, ConversationMessage
from mirror.providers.base import AIProvider

logger = logging.getLogger(__name__)

_PING_PROMPT = "Reply with the word OK only."
_TIMEOUT_SEC = 15.0


async def _drain(provider: AIProvider) -> str:
    parts: list[str] = []
    stream = provider.chat(
        [ConversationMessage(role="user", content=_PING_PROMPT)],
        "You are a health check. Be brief.",
        ChatOptions(max_tokens=16),
    )
    async with aclosing(stream):
        async for chunk in stream:
            parts.append(chunk.delta)
    return "".join(parts)


async def _check_one(name: str, provider: AIProvider) -> tuple[str, bool, str]:
    """Ping a single provider. Returns (name, ok, error_message)."""
    try:
        await asyncio.wait_for(_drain(provider), timeout=_TIMEOUT_SEC)
        return name, True, ""
    except TimeoutError:
        return name, False, f"No reply within {_TIMEOUT_SEC:g}s"
    except Exception as exc:
        logger.debug("Health check failed for %s", name, exc_info=True)
        return name, False, str(exc)


async def run_health_checks(
    providers: dict[str, AIProvider],
) -> dict[str, tuple[bool, str]]:
    """Ping all providers in parallel.

    Returns:
        Dict mapping provider name -> (ok, error_message).
        error_message is "" when ok is True.
    """
    results = await asyncio.gather(*(_check_one(n, p) for n, p in providers.items()))
    return {name: (ok, err) for name, ok, err in results}

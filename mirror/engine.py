"""Mirror orchestration: classify, stream one or two backends, optionally judge."""

import logging
from collections.abc import AsyncIterator
from contextlib import aclosing

from mirror.accumulator import StreamAccumulator
from mirror.classifier import IntentClassifier
from mirror.gate import classify_route, will_classify
from mirror.judge import build_judge_messages, build_judge_system_prompt, extract_agreement_score
from mirror.merge import MergeEntry, merge_streams
from mirror.models import (
    AllComplete,
    BackendComplete,
    ChatOptions,
    Classified,
    Classifying,
    CompletedResponse,
    ConversationMessage,
    ErrorEvent,
    Intensity,
    MirrorEvent,
    StreamChunkEvent,
    SynthesisChunk,
    SynthesisComplete,
    SynthesisResult,
    Synthesizing,
)
from mirror.prompts import (
    build_challenger_prompt,
    build_original_prompt,
    build_persona_challenger_prompt,
    is_valid_persona,
)
from mirror.providers.base import AIProvider, MirrorAborted
from mirror.retry import DEFAULT_RETRIES, RETRY_BASE_DELAY_SEC, stream_with_retry

logger = logging.getLogger(__name__)

PREVIOUS_ORIGINAL_MARKER = "[PREVIOUS ORIGINAL RESPONSE]"


def build_challenger_history(history: list[ConversationMessage]) -> list[ConversationMessage]:
    """Copy of history with every assistant turn marked as the original's answer."""
    return [
        ConversationMessage(role="assistant", content=f"{PREVIOUS_ORIGINAL_MARKER}\n{m.content}")
        if m.role == "assistant"
        else m
        for m in history
    ]


class MirrorEngine:
    """Runs one question through the original, the challenger and the judge.

    ``run()`` yields a strictly ordered event stream that always ends with
    exactly one ``AllComplete`` or ``ErrorEvent``.
    """

    def __init__(
        self,
        original: AIProvider,
        classifier: IntentClassifier,
        challenger: AIProvider | None = None,
        intensity: Intensity = "moderate",
        auto_classify: bool = True,
        judge: AIProvider | None = None,
        persona: str | None = None,
        retries: int = DEFAULT_RETRIES,
        retry_base_delay: float = RETRY_BASE_DELAY_SEC,
    ) -> None:
        if challenger is not None and challenger.name() == original.name():
            raise ValueError(f"Challenger must differ from the original backend ({original.name()})")
        self._original = original
        self._classifier = classifier
        self._challenger = challenger
        self._intensity = intensity
        self._auto_classify = auto_classify
        self._judge = judge
        self._persona = persona
        self._retries = retries
        self._retry_base_delay = retry_base_delay

    async def run(
        self,
        user_input: str,
        history: list[ConversationMessage],
        options: ChatOptions | None = None,
    ) -> AsyncIterator[MirrorEvent]:
        """Answer ``user_input`` given ``history``; never raises.

        ``history`` is not modified.
        """
        try:
            has_challenger = self._challenger is not None
            if will_classify(self._auto_classify, has_challenger):
                yield Classifying()
            route = await classify_route(
                user_input, self._classifier, self._auto_classify, has_challenger, options
            )
            if route.intent is not None:
                yield Classified(result=route.intent)

            if route.mirror and self._challenger is not None:
                backends = self._run_mirror(self._challenger, user_input, history, options)
            else:
                backends = self._run_single(user_input, history, options)
            async with aclosing(backends) as events:
                async for event in events:
                    yield event
            yield AllComplete()
        except MirrorAborted as exc:
            logger.info("Run aborted: %s", exc)
            yield ErrorEvent(error=exc, aborted=True)
        except Exception as exc:
            logger.debug("Run failed", exc_info=True)
            yield ErrorEvent(error=exc)

    def _stream(
        self,
        provider: AIProvider,
        messages: list[ConversationMessage],
        system_prompt: str,
        options: ChatOptions | None,
    ):
        return stream_with_retry(
            provider,
            messages,
            system_prompt,
            options,
            retries=self._retries,
            base_delay=self._retry_base_delay,
        )

    def _challenger_prompt(self) -> str:
        if self._persona and is_valid_persona(self._persona):
            return build_persona_challenger_prompt(self._persona, self._intensity)
        return build_challenger_prompt(self._intensity)

    async def _run_single(
        self,
        user_input: str,
        history: list[ConversationMessage],
        options: ChatOptions | None,
    ) -> AsyncIterator[MirrorEvent]:
        messages = [*history, ConversationMessage(role="user", content=user_input)]
        accumulator = StreamAccumulator()
        backend_id = self._original.name()

        logger.info("Direct run via %s", backend_id)
        async with aclosing(self._stream(self._original, messages, build_original_prompt(), options)) as stream:
            async for chunk in stream:
                accumulator.add(chunk)
                yield StreamChunkEvent(backend_id=backend_id, chunk=chunk)

        yield BackendComplete(backend_id=backend_id, response=accumulator.complete())

    async def _run_mirror(
        self,
        challenger_provider: AIProvider,
        user_input: str,
        history: list[ConversationMessage],
        options: ChatOptions | None,
    ) -> AsyncIterator[MirrorEvent]:
        question = ConversationMessage(role="user", content=user_input)
        original_messages = [*history, question]
        challenger_messages = [*build_challenger_history(history), question]

        original = MergeEntry(
            backend_id=self._original.name(),
            stream=self._stream(self._original, original_messages, build_original_prompt(), options),
        )
        challenger = MergeEntry(
            backend_id=challenger_provider.name(),
            stream=self._stream(challenger_provider, challenger_messages, self._challenger_prompt(), options),
        )

        logger.info(
            "Mirror run: %s vs %s (%s%s)",
            original.backend_id,
            challenger.backend_id,
            self._intensity,
            f", persona {self._persona}" if self._persona else "",
        )
        async with aclosing(merge_streams([original, challenger])) as events:
            async for event in events:
                yield event

        if self._judge is not None:
            async for event in self._run_judge(
                self._judge,
                user_input,
                original.accumulator.complete(),
                challenger.accumulator.complete(),
                options,
            ):
                yield event

    async def _run_judge(
        self,
        judge: AIProvider,
        question: str,
        original: CompletedResponse,
        challenger: CompletedResponse,
        options: ChatOptions | None,
    ) -> AsyncIterator[MirrorEvent]:
        yield Synthesizing()

        logger.info("Running synthesis via %s", judge.name())
        messages = build_judge_messages(question, original.text, challenger.text)
        accumulator = StreamAccumulator()
        async with aclosing(self._stream(judge, messages, build_judge_system_prompt(), options)) as stream:
            async for chunk in stream:
                accumulator.add(chunk)
                yield SynthesisChunk(chunk=chunk)

        response = accumulator.complete()
        yield SynthesisComplete(
            result=SynthesisResult(
                text=response.text,
                agreement_score=extract_agreement_score(response.text),
                input_tokens=response.input_tokens,
                output_tokens=response.output_tokens,
            )
        )

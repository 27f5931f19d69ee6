"""Intent classifiers: decide whether a question deserves a challenger."""

import json
import logging
from abc import ABC, abstractmethod

from config.config_loader import AppConfig
from mirror.models import (
    INTENT_CATEGORIES,
    MIRROR_CATEGORIES,
    ChatOptions,
    ConversationMessage,
    IntentResult,
)
from mirror.providers.base import AIProvider
from mirror.providers.factory import create_provider

logger = logging.getLogger(__name__)

_DEFAULT_THRESHOLD = 0.75
_FACTUAL_PREFIXES = ("who ", "what ", "when ", "where ")

INTENT_SYSTEM_PROMPT = """\
You are an intent classifier for a CLI assistant.
Return strict JSON with keys: category, shouldMirror, confidence, reason.
Categories: factual_lookup, math_computation, code_task, conversational, opinion_advice, analysis, interpretation, prediction.
Rules:
- factual_lookup, math_computation, code_task, conversational => shouldMirror false
- opinion_advice, analysis, interpretation, prediction => shouldMirror true
Confidence is 0-1.
Return ONLY JSON."""


class ClassifierError(ValueError):
    """Raised when a classifier backend returns unusable output."""


class IntentClassifier(ABC):
    @abstractmethod
    async def classify(self, text: str, options: ChatOptions | None = None) -> IntentResult:
        ...


class HeuristicIntentClassifier(IntentClassifier):
    """Cheap rule: who/what/when/where questions are factual lookups."""

    async def classify(self, text: str, options: ChatOptions | None = None) -> IntentResult:
        looks_factual = text.strip().lower().startswith(_FACTUAL_PREFIXES)
        if looks_factual:
            return IntentResult(
                category="factual_lookup",
                should_mirror=False,
                confidence=0.55,
                reason="Heuristic: question starts with who/what/when/where.",
            )
        return IntentResult(
            category="analysis",
            should_mirror=True,
            confidence=0.45,
            reason="Heuristic: default to analysis for open-ended prompts.",
        )


class BrainIntentClassifier(IntentClassifier):
    """Ask a backend for a JSON verdict; low confidence biases towards mirroring."""

    def __init__(self, provider: AIProvider, threshold: float = _DEFAULT_THRESHOLD) -> None:
        self._provider = provider
        self._threshold = threshold

    async def classify(self, text: str, options: ChatOptions | None = None) -> IntentResult:
        call_options = ChatOptions(
            temperature=0,
            cancel_event=options.cancel_event if options is not None else None,
        )
        parts: list[str] = []
        async for chunk in self._provider.chat(
            [ConversationMessage(role="user", content=text)],
            INTENT_SYSTEM_PROMPT,
            call_options,
        ):
            if chunk.delta:
                parts.append(chunk.delta)

        parsed = parse_intent("".join(parts))
        if parsed.confidence < self._threshold:
            return IntentResult(
                category=parsed.category,
                should_mirror=True,
                confidence=parsed.confidence,
                reason=f"{parsed.reason} (below confidence threshold {self._threshold}).",
            )
        return parsed


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def parse_intent(text: str) -> IntentResult:
    """Parse the outermost JSON object of a classifier reply.

    Raises:
        ClassifierError: If no JSON object can be found or decoded.
    """
    trimmed = text.strip()
    start = trimmed.find("{")
    end = trimmed.rfind("}")
    if start == -1 or end <= start:
        raise ClassifierError("Classifier returned non-JSON output.")
    try:
        raw = json.loads(trimmed[start:end + 1])
    except json.JSONDecodeError as exc:
        raise ClassifierError(f"Classifier returned invalid JSON: {exc}") from exc
    if not isinstance(raw, dict):
        raise ClassifierError("Classifier JSON is not an object.")

    category = raw.get("category")
    if category not in INTENT_CATEGORIES:
        category = "analysis"

    confidence = raw.get("confidence")
    # bool is an int subclass; treat it as missing
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
        confidence = 0.0

    should_mirror = raw.get("shouldMirror")
    if not isinstance(should_mirror, bool):
        should_mirror = category in MIRROR_CATEGORIES

    reason = raw.get("reason")
    if not isinstance(reason, str) or not reason:
        reason = "No reason provided."

    return IntentResult(
        category=category,
        should_mirror=should_mirror,
        confidence=_clamp(float(confidence)),
        reason=reason,
    )


def build_intent_classifier(config: AppConfig, *, mock: bool = False) -> IntentClassifier:
    """LLM classifier on the configured backend, or the heuristic if that fails.

    Mock mode and mock backends use the heuristic: they cannot produce JSON.
    """
    if mock:
        return HeuristicIntentClassifier()

    settings = config.classifier
    model_cfg = config.models.get(settings.backend)
    if model_cfg is None or model_cfg.sdk == "mock":
        logger.debug("Classifier backend %r not configured, using heuristic", settings.backend)
        return HeuristicIntentClassifier()

    try:
        provider = create_provider(model_cfg, model_override=settings.model)
    except Exception as exc:
        logger.debug("Failed to init classifier backend %r: %s. Using heuristic", settings.backend, exc)
        return HeuristicIntentClassifier()
    return BrainIntentClassifier(provider, settings.confidence_threshold)

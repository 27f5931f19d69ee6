"""Classification gate: route a question to one backend or two."""

import logging
from dataclasses import dataclass

from mirror.classifier import IntentClassifier
from mirror.models import ChatOptions, IntentResult
from mirror.providers.base import MirrorAborted

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RouteDecision:
    mirror: bool
    intent: IntentResult | None = None


def will_classify(auto_classify: bool, has_challenger: bool) -> bool:
    """The classifier only runs when there is a challenger to route to."""
    return auto_classify and has_challenger


def fallback_intent(exc: Exception) -> IntentResult:
    return IntentResult(
        category="analysis",
        should_mirror=True,
        confidence=0.0,
        reason=f"Classifier error ({exc}); defaulting to mirror.",
    )


async def classify_route(
    user_input: str,
    classifier: IntentClassifier,
    auto_classify: bool,
    has_challenger: bool,
    options: ChatOptions | None = None,
) -> RouteDecision:
    """Decide single vs dual routing. Invokes the classifier at most once.

    A classifier failure never drops the challenger: it yields a mirror
    decision with a zero-confidence fallback intent.

    Raises:
        MirrorAborted: If the run is cancelled while classifying.
    """
    if not has_challenger:
        return RouteDecision(mirror=False)
    if not auto_classify:
        return RouteDecision(mirror=True)

    try:
        intent = await classifier.classify(user_input, options)
    except MirrorAborted:
        raise
    except Exception as exc:
        if options is not None and options.cancelled:
            raise MirrorAborted("Run aborted while classifying") from exc
        logger.warning("Classifier failed, defaulting to mirror: %s", exc)
        intent = fallback_intent(exc)

    mirror = intent.should_mirror and has_challenger
    logger.debug(
        "Classified as %s (%.2f): %s path",
        intent.category, intent.confidence, "mirror" if mirror else "direct",
    )
    return RouteDecision(mirror=mirror, intent=intent)

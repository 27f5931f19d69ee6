"""Tests for mirror/gate.py."""

import asyncio

import pytest

from mirror.gate import classify_route, fallback_intent, will_classify
from mirror.models import ChatOptions, IntentResult
from mirror.providers.base import MirrorAborted
from tests.conftest import DIRECT_INTENT, MIRROR_INTENT, FixedClassifier


async def test_no_challenger_skips_classifier():
    classifier = FixedClassifier(MIRROR_INTENT)

    route = await classify_route("q", classifier, auto_classify=True, has_challenger=False)

    assert route.mirror is False
    assert route.intent is None
    assert classifier.calls == 0


async def test_auto_classify_off_mirrors_when_challenger_present():
    classifier = FixedClassifier(DIRECT_INTENT)

    route = await classify_route("q", classifier, auto_classify=False, has_challenger=True)

    assert route.mirror is True
    assert route.intent is None
    assert classifier.calls == 0


async def test_should_mirror_routes_to_both():
    classifier = FixedClassifier(MIRROR_INTENT)

    route = await classify_route("q", classifier, auto_classify=True, has_challenger=True)

    assert route.mirror is True
    assert route.intent == MIRROR_INTENT
    assert classifier.calls == 1


async def test_direct_intent_routes_to_single():
    route = await classify_route("q", FixedClassifier(DIRECT_INTENT), auto_classify=True, has_challenger=True)

    assert route.mirror is False
    assert route.intent == DIRECT_INTENT


async def test_classifier_error_biases_to_mirror():
    classifier = FixedClassifier(error=ValueError("bad json"))

    route = await classify_route("q", classifier, auto_classify=True, has_challenger=True)

    assert route.mirror is True
    assert route.intent.confidence == 0.0
    assert "bad json" in route.intent.reason


async def test_classifier_error_after_cancel_is_abort():
    cancel = asyncio.Event()
    cancel.set()
    classifier = FixedClassifier(error=ConnectionError("closed"))

    with pytest.raises(MirrorAborted):
        await classify_route(
            "q", classifier, auto_classify=True, has_challenger=True, options=ChatOptions(cancel_event=cancel)
        )


@pytest.mark.parametrize(
    "auto, has_challenger, expected",
    [(True, True, True), (True, False, False), (False, True, False), (False, False, False)],
)
def test_will_classify(auto, has_challenger, expected):
    assert will_classify(auto, has_challenger) is expected


def test_fallback_intent_shape():
    intent = fallback_intent(RuntimeError("timeout"))
    assert isinstance(intent, IntentResult)
    assert intent.category == "analysis"
    assert intent.should_mirror is True
    assert intent.reason.startswith("Classifier error (timeout)")

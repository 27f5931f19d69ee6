"""Tests for mirror/judge.py."""

import pytest

from mirror.judge import build_judge_messages, build_judge_system_prompt, extract_agreement_score


@pytest.mark.parametrize("n", [0, 1, 42, 99, 100])
def test_extracts_formatted_score(n):
    assert extract_agreement_score(f"AGREEMENT: {n}%\nReasoning follows.") == n


@pytest.mark.parametrize("raw, expected", [("150", 100), ("-20", 0), ("100", 100)])
def test_out_of_range_scores_clamp(raw, expected):
    assert extract_agreement_score(f"AGREEMENT: {raw}%") == expected


@pytest.mark.parametrize(
    "text",
    ["agreement:55%", "Agreement :   55 %", "Some preamble.\n\nAGREEMENT: 55%\nSYNTHESIS"],
)
def test_lenient_format(text):
    assert extract_agreement_score(text) == 55


def test_first_match_wins():
    assert extract_agreement_score("AGREEMENT: 30%\n...AGREEMENT: 90%") == 30


@pytest.mark.parametrize("text", ["", "No score at all.", "AGREEMENT: high", "AGREEMENT 50%"])
def test_missing_score_is_none(text):
    assert extract_agreement_score(text) is None


def test_judge_messages_label_both_responses():
    messages = build_judge_messages("Is X good?", "Yes.", "No.")

    assert len(messages) == 1
    assert messages[0].role == "user"
    content = messages[0].content
    assert content.index("QUESTION") < content.index("RESPONSE A (Original)") < content.index("RESPONSE B (Challenger)")
    assert "Is X good?" in content


def test_system_prompt_demands_structure():
    prompt = build_judge_system_prompt()
    for heading in ("AGREEMENT:", "SYNTHESIS", "BLIND SPOT"):
        assert heading in prompt

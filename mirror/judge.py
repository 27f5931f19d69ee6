"""Judge pass: synthesis prompt, judge messages, agreement score extraction."""

import re

from mirror.models import ConversationMessage

_AGREEMENT_RE = re.compile(r"AGREEMENT\s*:\s*(-?\d+)\s*%", re.IGNORECASE)

_JUDGE_SYSTEM_PROMPT = """\
You are a neutral synthesis judge evaluating two AI responses to the same question.

Your output MUST follow this exact structure:

AGREEMENT: <number>%
<One sentence explaining what drives the score: where they converge or diverge>

SYNTHESIS
<The actual synthesized recommendation, the verdict after weighing both responses. Be concrete and actionable.>

BLIND SPOT
<What both models missed or assumed without questioning. Name the assumption or gap.>

Scoring guide for AGREEMENT:
- 90-100%: Substantively identical conclusions, only stylistic differences
- 70-89%: Same core answer, meaningful differences in emphasis or caveats
- 50-69%: Partial overlap, notable disagreement on key points
- 30-49%: Different conclusions but some shared premises
- 0-29%: Fundamentally opposed positions

Be direct and critical. Do not praise either response."""


def build_judge_system_prompt() -> str:
    return _JUDGE_SYSTEM_PROMPT


def build_judge_messages(
    question: str,
    original_text: str,
    challenger_text: str,
) -> list[ConversationMessage]:
    """Single user message holding the question and both labelled responses."""
    content = (
        f"QUESTION\n{question}\n\n---\n\n"
        f"RESPONSE A (Original)\n{original_text}\n\n---\n\n"
        f"RESPONSE B (Challenger)\n{challenger_text}\n\n---\n\n"
        "Provide your synthesis following the required format exactly."
    )
    return [ConversationMessage(role="user", content=content)]


def extract_agreement_score(text: str) -> int | None:
    """Return the first ``AGREEMENT: N%`` value clamped to 0-100, or None."""
    match = _AGREEMENT_RE.search(text or "")
    if not match:
        return None
    try:
        value = int(match.group(1))
    except ValueError:
        return None
    return max(0, min(100, value))

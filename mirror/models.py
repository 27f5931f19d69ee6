"""Pure dataclasses for the Adversarial Mirror pipeline. No logic, no deps."""

import asyncio
from dataclasses import dataclass, field
from typing import Literal

Role = Literal["user", "assistant", "system"]
Intensity = Literal["mild", "moderate", "aggressive"]
IntentCategory = Literal[
    "factual_lookup",
    "math_computation",
    "code_task",
    "conversational",
    "opinion_advice",
    "analysis",
    "interpretation",
    "prediction",
]

INTENSITIES: tuple[str, ...] = ("mild", "moderate", "aggressive")
INTENT_CATEGORIES: tuple[str, ...] = (
    "factual_lookup",
    "math_computation",
    "code_task",
    "conversational",
    "opinion_advice",
    "analysis",
    "interpretation",
    "prediction",
)
MIRROR_CATEGORIES: frozenset[str] = frozenset(
    {"opinion_advice", "analysis", "interpretation", "prediction"}
)


@dataclass(frozen=True)
class ConversationMessage:
    role: Role
    content: str


@dataclass
class ChatOptions:
    temperature: float | None = None
    max_tokens: int | None = None
    cancel_event: asyncio.Event | None = None  # run-wide cancellation token

    @property
    def cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()


@dataclass
class StreamChunk:
    delta: str
    is_final: bool = False
    input_tokens: int | None = None
    output_tokens: int | None = None


@dataclass
class CompletedResponse:
    text: str
    input_tokens: int | None = None
    output_tokens: int | None = None


@dataclass(frozen=True)
class IntentResult:
    category: IntentCategory
    should_mirror: bool
    confidence: float      # 0.0 - 1.0
    reason: str


@dataclass
class SynthesisResult:
    text: str
    agreement_score: int | None = None    # 0 - 100
    input_tokens: int | None = None
    output_tokens: int | None = None


@dataclass
class BackendResult:
    backend_id: str
    text: str
    input_tokens: int | None = None
    output_tokens: int | None = None
    latency_sec: float | None = None


@dataclass
class HistoryEntry:
    id: str
    created_at: str        # ISO-8601, UTC
    question: str
    original: BackendResult
    challenger: BackendResult | None = None
    intent: IntentResult | None = None
    synthesis: SynthesisResult | None = None


# --- Events emitted by MirrorEngine.run() ---

@dataclass
class Classifying:
    type: str = field(default="classifying", init=False)


@dataclass
class Classified:
    result: IntentResult
    type: str = field(default="classified", init=False)


@dataclass
class StreamChunkEvent:
    backend_id: str
    chunk: StreamChunk
    type: str = field(default="stream_chunk", init=False)


@dataclass
class BackendComplete:
    backend_id: str
    response: CompletedResponse
    type: str = field(default="backend_complete", init=False)


@dataclass
class Synthesizing:
    type: str = field(default="synthesizing", init=False)


@dataclass
class SynthesisChunk:
    chunk: StreamChunk
    type: str = field(default="synthesis_chunk", init=False)


@dataclass
class SynthesisComplete:
    result: SynthesisResult
    type: str = field(default="synthesis_complete", init=False)


@dataclass
class AllComplete:
    type: str = field(default="all_complete", init=False)


@dataclass
class ErrorEvent:
    error: Exception
    aborted: bool = False  # True when the run was cancelled on purpose
    type: str = field(default="error", init=False)


MirrorEvent = (
    Classifying
    | Classified
    | StreamChunkEvent
    | BackendComplete
    | Synthesizing
    | SynthesisChunk
    | SynthesisComplete
    | AllComplete
    | ErrorEvent
)

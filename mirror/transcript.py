"""Fold a MirrorEngine event stream into per-backend results."""

import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

from mirror.models import (
    BackendComplete,
    BackendResult,
    Classified,
    ErrorEvent,
    HistoryEntry,
    IntentResult,
    MirrorEvent,
    StreamChunkEvent,
    SynthesisChunk,
    SynthesisComplete,
    SynthesisResult,
)


@dataclass
class Transcript:
    """Everything one run produced, built incrementally from its events."""

    question: str
    started_at: float = field(default_factory=time.monotonic)
    intent: IntentResult | None = None
    streamed: dict[str, str] = field(default_factory=dict)
    results: dict[str, BackendResult] = field(default_factory=dict)
    synthesis_text: str = ""
    synthesis: SynthesisResult | None = None
    error: Exception | None = None
    aborted: bool = False
    completed: bool = False

    def apply(self, event: MirrorEvent) -> None:
        if isinstance(event, Classified):
            self.intent = event.result
        elif isinstance(event, StreamChunkEvent):
            self.streamed[event.backend_id] = self.streamed.get(event.backend_id, "") + event.chunk.delta
        elif isinstance(event, BackendComplete):
            self.results[event.backend_id] = BackendResult(
                backend_id=event.backend_id,
                text=event.response.text,
                input_tokens=event.response.input_tokens,
                output_tokens=event.response.output_tokens,
                latency_sec=time.monotonic() - self.started_at,
            )
        elif isinstance(event, SynthesisChunk):
            self.synthesis_text += event.chunk.delta
        elif isinstance(event, SynthesisComplete):
            self.synthesis = event.result
        elif isinstance(event, ErrorEvent):
            self.error = event.error
            self.aborted = event.aborted
        elif event.type == "all_complete":
            self.completed = True

    def text_for(self, backend_id: str) -> str:
        """Final text if the backend completed, else what has streamed so far."""
        result = self.results.get(backend_id)
        return result.text if result is not None else self.streamed.get(backend_id, "")

    def to_history_entry(self, original_id: str, challenger_id: str | None) -> HistoryEntry | None:
        """HistoryEntry for a completed run; None if the original never finished."""
        original = self.results.get(original_id)
        if original is None:
            return None
        challenger = self.results.get(challenger_id) if challenger_id else None
        return HistoryEntry(
            id=uuid.uuid4().hex[:8],
            created_at=datetime.now(timezone.utc).isoformat(timespec="seconds"),
            question=self.question,
            original=original,
            challenger=challenger,
            intent=self.intent,
            synthesis=self.synthesis,
        )

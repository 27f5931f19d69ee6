"""Running text and usage totals for one streamed backend response."""

from mirror.models import CompletedResponse, StreamChunk


class StreamAccumulator:
    """Concatenates chunk deltas and keeps the latest known token counts."""

    def __init__(self) -> None:
        self._parts: list[str] = []
        self._input_tokens: int | None = None
        self._output_tokens: int | None = None

    def add(self, chunk: StreamChunk) -> None:
        if chunk.delta:
            self._parts.append(chunk.delta)
        # Later counts win; a missing count never erases a known one.
        if chunk.input_tokens is not None:
            self._input_tokens = chunk.input_tokens
        if chunk.output_tokens is not None:
            self._output_tokens = chunk.output_tokens

    def complete(self) -> CompletedResponse:
        return CompletedResponse(
            text="".join(self._parts),
            input_tokens=self._input_tokens,
            output_tokens=self._output_tokens,
        )

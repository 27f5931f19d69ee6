"""Fair, lossless interleaving of several independently paced chunk streams."""

import asyncio
import logging
from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import aclosing
from dataclasses import dataclass, field

from mirror.accumulator import StreamAccumulator
from mirror.models import BackendComplete, StreamChunk, StreamChunkEvent

logger = logging.getLogger(__name__)

_DONE = object()


@dataclass
class MergeEntry:
    backend_id: str
    stream: AsyncGenerator[StreamChunk, None]
    accumulator: StreamAccumulator = field(default_factory=StreamAccumulator)


async def merge_streams(
    entries: list[MergeEntry],
) -> AsyncIterator[StreamChunkEvent | BackendComplete]:
    """Interleave chunks from all entries in real arrival order.

    Every stream is pumped by its own task with exactly one pull outstanding;
    the pump is re-armed only after its chunk has been handed downstream, so a
    fast stream cannot run ahead and a slow one is serviced as soon as its
    pull resolves. Chunks of one stream keep their order. Each stream ends
    with exactly one BackendComplete carrying its accumulated response.

    Raises:
        Exception: The first error raised by any stream. Remaining pumps are
            cancelled and their streams closed before it propagates.
    """
    queue: asyncio.Queue[tuple[int, object]] = asyncio.Queue()
    rearm = [asyncio.Event() for _ in entries]

    async def pump(index: int, entry: MergeEntry) -> None:
        try:
            async with aclosing(entry.stream) as stream:
                async for chunk in stream:
                    queue.put_nowait((index, chunk))
                    await rearm[index].wait()
                    rearm[index].clear()
        except Exception as exc:
            queue.put_nowait((index, exc))
            return
        queue.put_nowait((index, _DONE))

    tasks = [
        asyncio.create_task(pump(i, entry), name=f"merge-{entry.backend_id}")
        for i, entry in enumerate(entries)
    ]
    open_streams = len(entries)
    try:
        while open_streams:
            index, item = await queue.get()
            entry = entries[index]
            if item is _DONE:
                open_streams -= 1
                logger.debug("Stream %s finished", entry.backend_id)
                yield BackendComplete(backend_id=entry.backend_id, response=entry.accumulator.complete())
                continue
            if isinstance(item, BaseException):
                raise item
            entry.accumulator.add(item)
            yield StreamChunkEvent(backend_id=entry.backend_id, chunk=item)
            rearm[index].set()
    finally:
        for task in tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

"""Per-response event pipeline: an ordered frame queue drained by a single consumer."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import AsyncIterator, Optional, Union

from pydantic import ValidationError

from slaude.core.events import SlackUpdate, SnapshotDelta
from slaude.core.normalizer import SnapshotNormalizer

logger = logging.getLogger(__name__)

Frame = Union[str, bytes]

_CLOSED = object()


def parse_frame(raw: Frame) -> Optional[SlackUpdate]:
    """Decode one realtime frame. Malformed frames are logged and dropped."""
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        logger.warning("skipping unparseable Slack frame: %s", e)
        return None
    if not isinstance(data, dict):
        logger.warning("skipping Slack frame that is not an object")
        return None
    try:
        return SlackUpdate.model_validate(data)
    except ValidationError as e:
        logger.warning("skipping malformed Slack event: %s", e.errors()[:1])
        return None


class ResponseSession:
    """Serializes normalization for one response.

    Producers call :meth:`feed` (and :meth:`close` when the source ends); exactly
    one consumer iterates :meth:`deltas` or awaits :meth:`collect`. A response
    that is still typing when ``timeout`` seconds have passed is forced to
    finish with whatever text has accumulated.
    """

    def __init__(self, normalizer: SnapshotNormalizer, timeout: float) -> None:
        self._normalizer = normalizer
        self._timeout = timeout
        self._queue: asyncio.Queue = asyncio.Queue()
        self._consumed = False

    @property
    def text(self) -> str:
        return self._normalizer.state.last_emitted

    def feed(self, frame: Frame) -> None:
        self._queue.put_nowait(frame)

    def close(self) -> None:
        self._queue.put_nowait(_CLOSED)

    async def _events(self) -> AsyncIterator[Optional[SlackUpdate]]:
        """Parsed events in arrival order; yields None once the deadline or the source end is hit."""
        if self._consumed:
            raise RuntimeError("ResponseSession has a single consumer")
        self._consumed = True
        deadline = time.monotonic() + self._timeout
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                logger.warning("response timed out after %ss", self._timeout)
                yield None
                return
            try:
                frame = await asyncio.wait_for(self._queue.get(), timeout=remaining)
            except asyncio.TimeoutError:
                continue
            if frame is _CLOSED:
                logger.info("event source closed before the response finished")
                yield None
                return
            event = parse_frame(frame)
            if event is not None:
                await self._sync_blacklist(event.thread_id)
                yield event

    async def _sync_blacklist(self, thread_id: Optional[str] = None) -> None:
        await self._normalizer.blacklist.sync(thread_id)

    async def deltas(self) -> AsyncIterator[SnapshotDelta]:
        """Streaming consumer: non-empty deltas in order, ending with exactly one done delta."""
        async for event in self._events():
            if event is None:
                self._normalizer.state.typing_done = True
                yield SnapshotDelta(delta="", done=True, timed_out=True)
                return
            result = self._normalizer.normalize(event)
            if result is None:
                continue
            if result.done:
                await self._sync_blacklist()
            yield result
            if result.done:
                return

    async def collect(self) -> str:
        """Non-streaming consumer: the full text, emitted exactly once."""
        async for event in self._events():
            if event is None:
                return self.text
            if not self._normalizer.validate(event):
                if self.text:
                    logger.warning(
                        "invalid event before completion, returning partial response",
                        extra={"length": len(self.text)},
                    )
                    return self.text
                continue
            result = self._normalizer.normalize(event)
            if result is None:
                continue
            if result.done:
                await self._sync_blacklist()
                return self.text
            logger.info("received %s characters...", len(self.text))
        return self.text

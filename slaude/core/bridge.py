"""Completion bridge: one chat-completion request served through a Slack thread."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, AsyncIterator, Callable, Optional

from slaude.channels.slack import SlackClient, SlackRealtime
from slaude.core.events import ChatCompletionRequest, SnapshotDelta
from slaude.core.normalizer import ResponseState, SnapshotNormalizer
from slaude.core.prompt import PromptChunker
from slaude.core.session import ResponseSession
from slaude.core.validity import ThreadBlacklist, build_blacklist

if TYPE_CHECKING:
    from slaude.config.loader import Config

logger = logging.getLogger(__name__)


class CompletionBridge:
    """Posts the prompt as a thread, pings the bot and follows its reply until it stops typing."""

    def __init__(
        self,
        config: "Config",
        slack: Optional[SlackClient] = None,
        realtime_factory: Optional[Callable[[], SlackRealtime]] = None,
        blacklist: Optional[ThreadBlacklist] = None,
    ) -> None:
        self._config = config
        self._slack = slack or SlackClient(config.slack)
        self._realtime_factory = realtime_factory or (lambda: SlackRealtime(config.slack))
        self._blacklist = blacklist if blacklist is not None else build_blacklist(config)
        self._chunker = PromptChunker(config.prompt)

    def new_session(self) -> ResponseSession:
        stream = self._config.stream
        normalizer = SnapshotNormalizer(
            self._config.slack.bot_user_id,
            self._blacklist,
            typing_indicator=stream.typing_indicator,
            stop_markers=stream.stop_markers,
            state=ResponseState(),
        )
        return ResponseSession(normalizer, timeout=stream.response_timeout)

    async def post_prompt(self, request: ChatCompletionRequest) -> str:
        """Post every prompt chunk in order; returns the thread ts."""
        chunks = self._chunker.chunk(request.messages)
        thread_ts = await self._slack.create_thread(chunks[0].text)
        logger.info("created thread with ts %s", thread_ts)
        for i, chunk in enumerate(chunks[1:], start=1):
            await self._slack.create_reply(chunk.text, thread_ts)
            logger.info("created reply %s on thread %s", i, thread_ts)
        return thread_ts

    @asynccontextmanager
    async def _open(self, request: ChatCompletionRequest) -> AsyncIterator[ResponseSession]:
        thread_ts = await self.post_prompt(request)
        session = self.new_session()
        realtime = self._realtime_factory()
        await realtime.connect()

        async def pump() -> None:
            try:
                async for frame in realtime.frames():
                    session.feed(frame)
            finally:
                session.close()

        reader = asyncio.create_task(pump())
        try:
            await self._slack.ping_bot(thread_ts)
            logger.info("pinged bot on thread %s", thread_ts)
            yield session
        finally:
            reader.cancel()
            try:
                await reader
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.warning("realtime reader stopped with error: %s", e)
            await realtime.close()
            await self._blacklist.aclose()
            logger.info("finished response for thread %s", thread_ts)

    async def stream(self, request: ChatCompletionRequest) -> AsyncIterator[SnapshotDelta]:
        """Deltas of the bot's reply; the last one has done=True."""
        async with self._open(request) as session:
            logger.info("opened stream for the bot's response")
            async for delta in session.deltas():
                yield delta

    async def complete(self, request: ChatCompletionRequest) -> str:
        """Full text of the bot's reply once it stops typing."""
        async with self._open(request) as session:
            logger.info("awaiting the bot's response")
            return await session.collect()

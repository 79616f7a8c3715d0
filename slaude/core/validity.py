"""Validity filter for Slack update events and the thread blacklist it consults."""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Any, Optional, Protocol, runtime_checkable

from slaude.core.events import SlackUpdate

if TYPE_CHECKING:
    from slaude.config.loader import Config

logger = logging.getLogger(__name__)


@runtime_checkable
class ThreadBlacklist(Protocol):
    """Append-only set of thread ids that were finished early by a stop marker.

    ``add`` and ``__contains__`` never do I/O. Backends shared between
    processes exchange entries in ``sync``, which async callers await between
    events, and release connections in ``aclose``.
    """

    def add(self, thread_id: str) -> None: ...

    def __contains__(self, thread_id: object) -> bool: ...

    async def sync(self, thread_id: Optional[str] = None) -> None: ...

    async def aclose(self) -> None: ...


class InMemoryThreadBlacklist:
    """Process-wide blacklist; safe to share between concurrent responses."""

    def __init__(self) -> None:
        self._threads: set[str] = set()
        self._lock = threading.Lock()

    def add(self, thread_id: str) -> None:
        with self._lock:
            self._threads.add(thread_id)

    def __contains__(self, thread_id: object) -> bool:
        with self._lock:
            return thread_id in self._threads

    def __len__(self) -> int:
        with self._lock:
            return len(self._threads)

    async def sync(self, thread_id: Optional[str] = None) -> None:
        return None

    async def aclose(self) -> None:
        return None


class RedisThreadBlacklist(InMemoryThreadBlacklist):
    """Blacklist shared by every worker process through a Redis set.

    Lookups read the local set. :meth:`sync` publishes local additions and
    pulls one thread's membership from Redis. When Redis fails the error is
    logged, unpublished entries are kept for the next sync and the local set
    keeps answering.
    """

    def __init__(
        self, redis_url: str, key: str, ttl_seconds: int = 86400, client: Any = None
    ) -> None:
        super().__init__()
        self._redis_url = redis_url
        self._client = client
        self._key = key
        self._ttl = ttl_seconds
        self._unpublished: list[str] = []

    def _redis(self) -> Any:
        if self._client is None:
            import redis.asyncio as aioredis

            self._client = aioredis.from_url(self._redis_url, decode_responses=True)
        return self._client

    def add(self, thread_id: str) -> None:
        super().add(thread_id)
        with self._lock:
            self._unpublished.append(thread_id)

    async def sync(self, thread_id: Optional[str] = None) -> None:
        from redis.exceptions import RedisError

        with self._lock:
            pending, self._unpublished = self._unpublished, []
        try:
            client = self._redis()
            if pending:
                pipe = client.pipeline()
                pipe.sadd(self._key, *pending)
                if self._ttl > 0:
                    pipe.expire(self._key, self._ttl)
                await pipe.execute()
            if thread_id and thread_id not in self:
                if await client.sismember(self._key, thread_id):
                    super().add(thread_id)
        except RedisError as e:
            logger.warning("Redis blacklist unavailable, using local entries: %s", e)
            with self._lock:
                self._unpublished = pending + self._unpublished

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


_default_blacklist = InMemoryThreadBlacklist()


def build_blacklist(config: "Config") -> ThreadBlacklist:
    if config.blacklist.backend == "redis":
        return RedisThreadBlacklist(
            config.redis.url, config.blacklist.key, config.blacklist.ttl_seconds
        )
    return _default_blacklist


def is_valid(event: SlackUpdate, target_sender_id: str, blacklist: ThreadBlacklist) -> bool:
    """Accept events from the target sender that do not belong to a finished thread."""
    if event.message is None:
        return True
    sender = event.sender_id
    if sender and sender != target_sender_id:
        logger.debug("ignoring event from other sender", extra={"sender": sender})
        return False
    thread_id = event.message.thread_ts
    if thread_id and thread_id in blacklist:
        logger.info("ignoring update in finished thread %s", thread_id)
        return False
    return True

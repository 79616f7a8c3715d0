"""Turn role-tagged chat messages into ordered Slack-sized prompt chunks."""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from slaude.config.loader import PromptSettings
from slaude.core.events import ChatMessage, Chunk, Role
from slaude.core.splitter import split_text

logger = logging.getLogger(__name__)

_UNLABELLED_FIRST_ROLES = (Role.SYSTEM, Role.USER)


class ChunkOverflowError(RuntimeError):
    """A produced chunk is longer than the configured maximum. Always a bug."""


class PromptChunker:
    """Renders messages as "Label: content" blocks and packs them into chunks.

    A single rendering that is longer than ``max_chunk_length`` has its content
    split with the boundary-safe splitter; the remainder is queued right after
    it as a new message with the same role and name.
    """

    def __init__(self, settings: PromptSettings) -> None:
        self._settings = settings

    def label_for(self, msg: ChatMessage, is_first: bool) -> Optional[str]:
        s = self._settings
        if is_first and s.omit_first_role_label and msg.role in _UNLABELLED_FIRST_ROLES:
            return None
        if msg.role is Role.SYSTEM and msg.name:
            label = s.rename_roles.get(msg.name)
            if label:
                return label
        return s.rename_roles.get(msg.role.value) or None

    def render(self, msg: ChatMessage, is_first: bool) -> str:
        label = self.label_for(msg, is_first)
        if label:
            return f"{label}: {msg.content}\n\n"
        return f"{msg.content}\n\n"

    def chunk(self, messages: Sequence[ChatMessage]) -> list[Chunk]:
        s = self._settings
        max_len = s.max_chunk_length
        pending = list(messages)
        chunks: list[Chunk] = []
        buffer = ""
        i = 0
        while i < len(pending):
            msg = pending[i]
            part = self.render(msg, i == 0)
            if len(buffer) + len(part) < max_len:
                buffer += part
                i += 1
                continue
            if buffer:
                chunks.append(Chunk(buffer))
            if len(part) > max_len:
                left, right = split_text(
                    msg.content, max_len - s.length_overhead, s.min_split_length
                )
                logger.debug(
                    "message too long, split",
                    extra={"index": i, "length": len(msg.content), "left": len(left)},
                )
                pending.insert(i + 1, msg.model_copy(update={"content": right}))
                part = self.render(msg.model_copy(update={"content": left}), i == 0)
            buffer = part
            i += 1
        chunks.append(Chunk(buffer))
        for c in chunks:
            if len(c) > max_len:
                raise ChunkOverflowError(f"chunk of {len(c)} chars exceeds maximum {max_len}")
        logger.debug("built prompt chunks", extra={"count": len(chunks)})
        return chunks

"""Snapshot-to-delta normalization for messages that Slack re-sends in full on every edit."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from slaude.core.events import MESSAGE_CHANGED, SlackUpdate, SnapshotDelta
from slaude.core.validity import ThreadBlacklist, is_valid

logger = logging.getLogger(__name__)


@dataclass
class ResponseState:
    """Mutable state of one in-flight response. Never shared between responses."""

    last_emitted: str = ""
    typing_done: bool = False


class SnapshotNormalizer:
    """Turns successive full-text snapshots of one message into a monotonic delta stream."""

    def __init__(
        self,
        target_sender_id: str,
        blacklist: ThreadBlacklist,
        *,
        typing_indicator: str,
        stop_markers: Sequence[str] = (),
        state: Optional[ResponseState] = None,
    ) -> None:
        self._target = target_sender_id
        self.blacklist = blacklist
        self._typing_indicator = typing_indicator
        self._stop_markers = tuple(m for m in stop_markers if m)
        self.state = state if state is not None else ResponseState()

    def validate(self, event: SlackUpdate) -> bool:
        return is_valid(event, self._target, self.blacklist)

    def crop(self, text: str, thread_id: Optional[str]) -> tuple[str, bool]:
        """Cut text at every stop marker found past position 0. Returns (text, cropped)."""
        cropped = False
        for marker in self._stop_markers:
            idx = text.find(marker)
            if idx > 0:
                logger.warning(
                    "stop marker found, cropping text at %s",
                    idx,
                    extra={"marker": marker, "thread_ts": thread_id},
                )
                text = text[:idx]
                cropped = True
        if cropped and thread_id:
            self.blacklist.add(thread_id)
            logger.info("message thread stopped early %s", thread_id)
        return text, cropped

    def normalize(self, event: SlackUpdate) -> Optional[SnapshotDelta]:
        """Delta for one event, or None when there is nothing worth emitting."""
        if not self.validate(event):
            return None
        if event.subtype != MESSAGE_CHANGED or event.message is None:
            return None
        text = event.message.text
        typing = bool(self._typing_indicator) and text.endswith(self._typing_indicator)
        if typing:
            text = text[: len(text) - len(self._typing_indicator)]
        text, cropped = self.crop(text, event.thread_id)
        if cropped:
            typing = False
        delta = self._advance(text)
        done = not typing
        self.state.typing_done = done
        if not delta and not done:
            return None
        return SnapshotDelta(delta=delta, done=done)

    def _advance(self, text: str) -> str:
        last = self.state.last_emitted
        if text == last:
            return ""
        if not text.startswith(last):
            logger.debug(
                "discarding out-of-order snapshot",
                extra={"length": len(text), "last_length": len(last)},
            )
            return ""
        self.state.last_emitted = text
        return text[len(last) :]

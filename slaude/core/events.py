"""Payloads crossing the service boundary. Inbound and outbound records are Pydantic models."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field

MESSAGE_CHANGED = "message_changed"


class Role(str, Enum):
    """Roles a chat-completion client may send."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    EXAMPLE_USER = "example_user"
    EXAMPLE_ASSISTANT = "example_assistant"


class ChatMessage(BaseModel):
    """One role-tagged input message. Immutable once received."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    role: Role
    content: str = ""
    name: Optional[str] = None


class ChatCompletionRequest(BaseModel):
    """Body of POST /chat/completions. Only messages and stream are used."""

    model_config = ConfigDict(extra="ignore")

    messages: list[ChatMessage]
    stream: bool = False
    model: Optional[str] = None


class SlackMessage(BaseModel):
    """Nested message of a Slack update event."""

    model_config = ConfigDict(extra="ignore")

    user: Optional[str] = None
    thread_ts: Optional[str] = None
    text: str = ""


class SlackUpdate(BaseModel):
    """Realtime event frame from Slack; only message_changed drives normalization."""

    model_config = ConfigDict(extra="ignore")

    type: Optional[str] = None
    subtype: Optional[str] = None
    user: Optional[str] = None
    thread_ts: Optional[str] = None
    message: Optional[SlackMessage] = None

    @property
    def sender_id(self) -> Optional[str]:
        if self.user:
            return self.user
        if self.message is not None:
            return self.message.user
        return None

    @property
    def thread_id(self) -> Optional[str]:
        """Thread of the nested message; the top-level thread_ts is not consulted."""
        if self.message is not None:
            return self.message.thread_ts
        return None


@dataclass(frozen=True)
class Chunk:
    """Ordered outbound prompt fragment; one Slack message."""

    text: str

    def __len__(self) -> int:
        return len(self.text)


class SplitDecision(NamedTuple):
    """Result of a boundary search; left + right is the original text."""

    left: str
    right: str


class SnapshotDelta(BaseModel):
    """Newly appended text since the previous snapshot, plus completion flag."""

    delta: str = ""
    done: bool = False
    timed_out: bool = Field(default=False, description="Completion forced by the response timeout")


def completion_chunk(content: str) -> dict[str, Any]:
    """Streaming record: {"choices": [{"delta": {"content": ...}}]}."""
    return {"choices": [{"delta": {"content": content}}]}


def completion_message(content: str) -> dict[str, Any]:
    """Non-streaming body: {"choices": [{"message": {"content": ...}}]}."""
    return {"choices": [{"message": {"content": content}}]}

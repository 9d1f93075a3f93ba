"""Types shared by the chat relay and its client."""

from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field

Role = Literal["system", "user", "assistant"]


class ChatTurn(BaseModel):
    """One message in a conversation.

    The last assistant turn is mutated in place while a stream is in flight.
    """

    role: Role
    content: str = ""


class ChunkMessage(BaseModel):
    role: Literal["assistant"] = "assistant"
    content: str = ""


class ChatChunk(BaseModel):
    """Uniform incremental fragment produced by every AI provider."""

    message: ChunkMessage = Field(default_factory=ChunkMessage)

    @classmethod
    def of(cls, content: str) -> "ChatChunk":
        return cls(message=ChunkMessage(content=content or ""))

    @property
    def text(self) -> str:
        return self.message.content


class StreamStatus(str, Enum):
    """Lifecycle of a single streamed request as seen by the client."""

    IDLE = "idle"
    SENDING = "sending"
    STREAMING = "streaming"
    READY = "ready"
    CANCELLED = "cancelled"
    ERRORED = "errored"

    @property
    def label(self) -> str:
        return STATUS_LABELS[self]

    @property
    def terminal(self) -> bool:
        return self in (StreamStatus.READY, StreamStatus.CANCELLED, StreamStatus.ERRORED)


STATUS_LABELS = {
    StreamStatus.IDLE: "Idle",
    StreamStatus.SENDING: "Sending...",
    StreamStatus.STREAMING: "Streaming...",
    StreamStatus.READY: "Ready",
    StreamStatus.CANCELLED: "Cancelled",
    StreamStatus.ERRORED: "Error",
}

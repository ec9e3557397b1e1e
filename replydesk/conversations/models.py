"""Domain models used by the conversation service and the pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Union
from uuid import UUID


@dataclass(frozen=True)
class TextContent:
    body: str
    kind: str = "text"


@dataclass(frozen=True)
class AudioContent:
    media_id: str
    mime_type: str | None = None
    kind: str = "audio"


@dataclass(frozen=True)
class MediaContent:
    """Image or document attachment; persisted but not answered."""

    kind: str
    media_id: str | None = None
    caption: str | None = None
    mime_type: str | None = None


@dataclass(frozen=True)
class UnsupportedContent:
    """Any message type the pipeline cannot ground a reply for."""

    kind: str


MessageContent = Union[TextContent, AudioContent, MediaContent, UnsupportedContent]


@dataclass
class InboundMessage:
    """Uniform representation of one message entry in a webhook delivery."""

    provider_message_id: str
    sender_id: str
    business_phone_id: str
    content: MessageContent
    sender_name: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    sent_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def message_type(self) -> str:
        """Persisted message type; unsupported kinds are stored as documents."""

        kind = self.content.kind
        if kind in {"text", "audio", "image", "document"}:
            return kind
        return "document"


@dataclass(frozen=True)
class ConversationHandle:
    """Minimal view of a resolved conversation."""

    id: UUID
    business_id: UUID
    contact_id: str
    contact_phone: str
    contact_name: str | None = None
    status: str = "active"
    created: bool = False


@dataclass(frozen=True)
class StoredMessage:
    id: UUID
    conversation_id: UUID
    direction: str
    message_type: str
    content: str | None
    ai_response_generated: bool
    created_at: datetime
    media_url: str | None = None
    transcription: str | None = None
    processing_time_ms: int | None = None
    provider_message_id: str | None = None


@dataclass
class HandoffDecision:
    should_handoff: bool
    keyword: str | None = None


__all__ = [
    "AudioContent",
    "ConversationHandle",
    "HandoffDecision",
    "InboundMessage",
    "MediaContent",
    "MessageContent",
    "StoredMessage",
    "TextContent",
    "UnsupportedContent",
]

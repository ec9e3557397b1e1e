"""Conversation resolution, persistence and schemas."""

from . import schemas
from .models import (
    AudioContent,
    ConversationHandle,
    HandoffDecision,
    InboundMessage,
    MediaContent,
    StoredMessage,
    TextContent,
    UnsupportedContent,
)
from .service import ConversationService

__all__ = [
    "AudioContent",
    "ConversationHandle",
    "ConversationService",
    "HandoffDecision",
    "InboundMessage",
    "MediaContent",
    "StoredMessage",
    "TextContent",
    "UnsupportedContent",
    "schemas",
]

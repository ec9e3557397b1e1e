"""Conversation resolution and message bookkeeping."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy.exc import IntegrityError

from ..app_logging import log_event
from ..config import ReplySettings
from .models import (
    ConversationHandle,
    HandoffDecision,
    InboundMessage,
    StoredMessage,
)
from .repository import ConversationRepository, DuplicateMessageError

logger = logging.getLogger(__name__)


class ConversationService:
    """Coordinates conversation lookup-or-create and message persistence."""

    def __init__(self, repository: ConversationRepository) -> None:
        self._repository = repository

    # ------------------------------------------------------------------
    # Conversations

    def get_conversation(self, conversation_id: UUID) -> ConversationHandle | None:
        return self._repository.get(conversation_id)

    def resolve(
        self,
        business_id: UUID,
        contact_id: str,
        contact_phone: str,
        *,
        contact_name: str | None = None,
        at: datetime | None = None,
    ) -> ConversationHandle:
        """Return the conversation for ``(business_id, contact_id)``.

        A missing conversation is created with status ``active``; an existing
        one has its last-activity marker advanced. When two deliveries race to
        create the same conversation the loser re-reads the winning row.
        """

        at = at or datetime.now(timezone.utc)
        conversation = self._repository.get_by_contact(business_id, contact_id)
        if conversation is not None:
            self._repository.touch(conversation.id, at)
            return conversation
        try:
            return self._repository.create_conversation(
                business_id, contact_id, contact_phone, contact_name, at
            )
        except IntegrityError:
            winner = self._repository.get_by_contact(business_id, contact_id)
            if winner is None:
                raise
            log_event(
                logger,
                "conversation.create_race_resolved",
                business_id=business_id,
                conversation_id=winner.id,
            )
            self._repository.touch(winner.id, at)
            return winner

    # ------------------------------------------------------------------
    # Messages

    def is_duplicate(self, provider_message_id: str | None) -> bool:
        if not provider_message_id:
            return False
        return self._repository.message_exists(provider_message_id)

    def record_inbound(
        self,
        conversation: ConversationHandle,
        message: InboundMessage,
        *,
        content: str,
        transcription: str | None = None,
        media_url: str | None = None,
    ) -> StoredMessage | None:
        """Append the inbound row; ``None`` means another delivery won."""

        try:
            return self._repository.add_message(
                conversation.id,
                direction="inbound",
                message_type=message.message_type,
                content=content,
                media_url=media_url,
                transcription=transcription,
                provider_message_id=message.provider_message_id or None,
            )
        except DuplicateMessageError:
            return None

    def record_outbound(
        self,
        conversation: ConversationHandle,
        *,
        content: str,
        ai_generated: bool,
        processing_time_ms: int | None = None,
        message_type: str = "text",
        media_url: str | None = None,
    ) -> StoredMessage:
        return self._repository.add_message(
            conversation.id,
            direction="outbound",
            message_type=message_type,
            content=content,
            media_url=media_url,
            ai_response_generated=ai_generated,
            processing_time_ms=processing_time_ms,
        )

    def record_simulated_exchange(
        self,
        conversation: ConversationHandle,
        user_text: str,
        reply: str,
        *,
        processing_time_ms: int | None = None,
    ) -> tuple[StoredMessage, StoredMessage]:
        inbound = self._repository.add_message(
            conversation.id, direction="inbound", message_type="text", content=user_text
        )
        outbound = self.record_outbound(
            conversation,
            content=reply,
            ai_generated=True,
            processing_time_ms=processing_time_ms,
        )
        self._repository.touch(conversation.id, outbound.created_at)
        return inbound, outbound

    def recent_messages(self, conversation_id: UUID, limit: int) -> list[StoredMessage]:
        return self._repository.recent_messages(conversation_id, limit=limit)

    # ------------------------------------------------------------------
    # Helpers

    @staticmethod
    def evaluate_handoff(text: str, settings: ReplySettings) -> HandoffDecision:
        keyword = settings.matches_transfer_keyword(text)
        if keyword:
            return HandoffDecision(True, keyword=keyword)
        return HandoffDecision(False)


__all__ = ["ConversationService"]

"""Database repository for conversations and messages."""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Protocol
from uuid import UUID

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from ..models import Conversation, Message
from .models import ConversationHandle, StoredMessage


class DuplicateMessageError(RuntimeError):
    """Raised when a provider message id has already been persisted."""


class ConversationRepository(Protocol):
    """Abstraction for persisting conversation artefacts."""

    def get(self, conversation_id: UUID) -> Optional[ConversationHandle]: ...

    def get_by_contact(self, business_id: UUID, contact_id: str) -> Optional[ConversationHandle]: ...

    def create_conversation(
        self,
        business_id: UUID,
        contact_id: str,
        contact_phone: str,
        contact_name: Optional[str],
        at: datetime,
    ) -> ConversationHandle: ...

    def touch(self, conversation_id: UUID, at: datetime) -> None: ...

    def message_exists(self, provider_message_id: str) -> bool: ...

    def add_message(
        self,
        conversation_id: UUID,
        *,
        direction: str,
        message_type: str,
        content: Optional[str],
        media_url: Optional[str] = None,
        transcription: Optional[str] = None,
        ai_response_generated: bool = False,
        processing_time_ms: Optional[int] = None,
        provider_message_id: Optional[str] = None,
    ) -> StoredMessage: ...

    def recent_messages(self, conversation_id: UUID, limit: int = 10) -> List[StoredMessage]: ...


class SqlAlchemyConversationRepository:
    """SQLAlchemy implementation of :class:`ConversationRepository`.

    Each operation runs in its own transaction so a failure in one pipeline
    step never leaves a half-open session behind for the next.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    # Conversation operations --------------------------------------------------
    def get(self, conversation_id: UUID) -> Optional[ConversationHandle]:
        with self._session_factory() as session:
            row = session.get(Conversation, conversation_id)
            return self._hydrate_conversation(row) if row else None

    def get_by_contact(self, business_id: UUID, contact_id: str) -> Optional[ConversationHandle]:
        with self._session_factory() as session:
            row = session.scalars(
                select(Conversation).where(
                    Conversation.business_id == business_id,
                    Conversation.whatsapp_contact_id == contact_id,
                )
            ).first()
            return self._hydrate_conversation(row) if row else None

    def create_conversation(
        self,
        business_id: UUID,
        contact_id: str,
        contact_phone: str,
        contact_name: Optional[str],
        at: datetime,
    ) -> ConversationHandle:
        """Insert a new conversation; raises ``IntegrityError`` on a lost race."""

        with self._session_factory.begin() as session:
            row = Conversation(
                business_id=business_id,
                whatsapp_contact_id=contact_id,
                contact_phone=contact_phone,
                contact_name=contact_name,
                status="active",
                last_activity_at=at,
            )
            session.add(row)
            session.flush()
            return self._hydrate_conversation(row, created=True)

    def touch(self, conversation_id: UUID, at: datetime) -> None:
        # Never move the marker backwards, even for out-of-order deliveries.
        with self._session_factory.begin() as session:
            session.execute(
                update(Conversation)
                .where(
                    Conversation.id == conversation_id,
                    or_(
                        Conversation.last_activity_at.is_(None),
                        Conversation.last_activity_at < at,
                    ),
                )
                .values(last_activity_at=at)
            )

    # Message operations -------------------------------------------------------
    def message_exists(self, provider_message_id: str) -> bool:
        with self._session_factory() as session:
            found = session.scalar(
                select(Message.sequence)
                .where(Message.whatsapp_message_id == provider_message_id)
                .limit(1)
            )
        return found is not None

    def add_message(
        self,
        conversation_id: UUID,
        *,
        direction: str,
        message_type: str,
        content: Optional[str],
        media_url: Optional[str] = None,
        transcription: Optional[str] = None,
        ai_response_generated: bool = False,
        processing_time_ms: Optional[int] = None,
        provider_message_id: Optional[str] = None,
    ) -> StoredMessage:
        try:
            with self._session_factory.begin() as session:
                row = Message(
                    conversation_id=conversation_id,
                    direction=direction,
                    message_type=message_type,
                    content=content,
                    media_url=media_url,
                    transcription=transcription,
                    ai_response_generated=ai_response_generated,
                    processing_time_ms=processing_time_ms,
                    whatsapp_message_id=provider_message_id,
                )
                session.add(row)
                session.flush()
                return self._hydrate_message(row)
        except IntegrityError as exc:
            if provider_message_id and self.message_exists(provider_message_id):
                raise DuplicateMessageError(provider_message_id) from exc
            raise

    def recent_messages(self, conversation_id: UUID, limit: int = 10) -> List[StoredMessage]:
        """Return the latest ``limit`` messages ordered oldest-first."""

        with self._session_factory() as session:
            rows = session.scalars(
                select(Message)
                .where(Message.conversation_id == conversation_id)
                .order_by(Message.sequence.desc())
                .limit(limit)
            ).all()
            messages = [self._hydrate_message(row) for row in rows]
        messages.reverse()
        return messages

    # Helpers ------------------------------------------------------------------
    @staticmethod
    def _hydrate_conversation(row: Conversation, *, created: bool = False) -> ConversationHandle:
        return ConversationHandle(
            id=row.id,
            business_id=row.business_id,
            contact_id=row.whatsapp_contact_id,
            contact_phone=row.contact_phone,
            contact_name=row.contact_name,
            status=row.status,
            created=created,
        )

    @staticmethod
    def _hydrate_message(row: Message) -> StoredMessage:
        return StoredMessage(
            id=row.id,
            conversation_id=row.conversation_id,
            direction=row.direction,
            message_type=row.message_type,
            content=row.content,
            ai_response_generated=bool(row.ai_response_generated),
            created_at=row.created_at,
            media_url=row.media_url,
            transcription=row.transcription,
            processing_time_ms=row.processing_time_ms,
            provider_message_id=row.whatsapp_message_id,
        )


__all__ = [
    "ConversationRepository",
    "DuplicateMessageError",
    "SqlAlchemyConversationRepository",
]

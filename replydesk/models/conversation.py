"""Conversation and message models written by the webhook pipeline.

Conversations are unique per ``(business_id, whatsapp_contact_id)``; the
constraint is what settles concurrent first-contact races. Messages are
append-only and may carry the provider message id, which is unique when
present so redelivered webhooks cannot be persisted twice.
"""

from __future__ import annotations

import datetime as dt
import uuid
from typing import List

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from . import Base
from .business import _utcnow


class Conversation(Base):
    """Durable thread between a business and one external contact."""

    __tablename__ = "conversations"
    __table_args__ = (
        UniqueConstraint(
            "business_id",
            "whatsapp_contact_id",
            name="uq_conversations_business_contact",
        ),
        Index("ix_conversations_last_activity", "business_id", "last_activity_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid(), primary_key=True, default=uuid.uuid4)
    business_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(), ForeignKey("business_profiles.id", ondelete="CASCADE"), nullable=False
    )
    whatsapp_contact_id: Mapped[str] = mapped_column(String(length=64), nullable=False)
    contact_phone: Mapped[str] = mapped_column(String(length=64), nullable=False)
    contact_name: Mapped[str | None] = mapped_column(String(length=255), nullable=True)
    status: Mapped[str] = mapped_column(String(length=16), nullable=False, default="active")
    last_activity_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    messages: Mapped[List["Message"]] = relationship(
        back_populates="conversation",
        order_by="Message.sequence",
        passive_deletes=True,
    )


class Message(Base):
    """Single inbound or outbound message.

    ``sequence`` is a monotonically increasing surrogate used to order
    messages by creation even when timestamps collide.
    """

    __tablename__ = "messages"
    __table_args__ = (
        Index("ix_messages_provider_id_unique", "whatsapp_message_id", unique=True),
        Index("ix_messages_conversation_sequence", "conversation_id", "sequence"),
    )

    sequence: Mapped[int] = mapped_column(Integer(), primary_key=True, autoincrement=True)
    id: Mapped[uuid.UUID] = mapped_column(Uuid(), nullable=False, unique=True, default=uuid.uuid4)
    conversation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(), ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False
    )
    direction: Mapped[str] = mapped_column(String(length=16), nullable=False)
    message_type: Mapped[str] = mapped_column(String(length=16), nullable=False, default="text")
    content: Mapped[str | None] = mapped_column(Text(), nullable=True)
    media_url: Mapped[str | None] = mapped_column(Text(), nullable=True)
    transcription: Mapped[str | None] = mapped_column(Text(), nullable=True)
    ai_response_generated: Mapped[bool] = mapped_column(Boolean(), nullable=False, default=False)
    processing_time_ms: Mapped[int | None] = mapped_column(Integer(), nullable=True)
    whatsapp_message_id: Mapped[str | None] = mapped_column(String(length=128), nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    conversation: Mapped[Conversation] = relationship(back_populates="messages")


__all__ = ["Conversation", "Message"]

"""Business-side SQLAlchemy models.

These tables are owned by the configuration UI; the webhook pipeline only
reads them. Catalog, policy and promotion rows are enumerated in creation
order when rendering the grounding document.
"""

from __future__ import annotations

import datetime as dt
import uuid
from decimal import Decimal
from typing import List

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from . import Base


def _utcnow() -> dt.datetime:
    """Return the current UTC timestamp with timezone awareness."""

    return dt.datetime.now(dt.timezone.utc)


class BusinessProfile(Base):
    """Tenant identity driving one assistant instance.

    Attributes:
        name: Display name of the business.
        tone: Communication tone (formal, casual, friendly or professional).
        ai_name: Display name the assistant uses when talking to contacts.
        ai_personality: Free-text personality directive.
        whatsapp_token: Channel provider access token.
        whatsapp_phone_id: Provider sender identifier messages arrive on.
        webhook_verify_token: Secret used during the webhook handshake.
    """

    __tablename__ = "business_profiles"
    __table_args__ = (
        Index("ix_business_profiles_phone_id_unique", "whatsapp_phone_id", unique=True),
        Index("ix_business_profiles_verify_token", "webhook_verify_token"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid(), primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(length=255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text(), nullable=True)
    industry: Mapped[str | None] = mapped_column(String(length=120), nullable=True)
    tone: Mapped[str] = mapped_column(String(length=32), nullable=False, default="friendly")
    ai_name: Mapped[str] = mapped_column(String(length=120), nullable=False, default="IARA")
    ai_personality: Mapped[str | None] = mapped_column(Text(), nullable=True)
    whatsapp_token: Mapped[str | None] = mapped_column(Text(), nullable=True)
    whatsapp_phone_id: Mapped[str | None] = mapped_column(String(length=64), nullable=True)
    webhook_verify_token: Mapped[str | None] = mapped_column(String(length=255), nullable=True)
    active: Mapped[bool] = mapped_column(Boolean(), nullable=False, default=True)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    ai_config: Mapped["AIConfig | None"] = relationship(
        back_populates="business", uselist=False, cascade="all, delete-orphan"
    )
    products: Mapped[List["Product"]] = relationship(
        back_populates="business", cascade="all, delete-orphan"
    )


class AIConfig(Base):
    """Per-business generation tuning. Absence implies defaults."""

    __tablename__ = "ai_configs"
    __table_args__ = (Index("ix_ai_configs_business_unique", "business_id", unique=True),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid(), primary_key=True, default=uuid.uuid4)
    business_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(), ForeignKey("business_profiles.id", ondelete="CASCADE"), nullable=False
    )
    response_style: Mapped[str | None] = mapped_column(String(length=32), nullable=True)
    enable_audio: Mapped[bool | None] = mapped_column(Boolean(), nullable=True, default=False)
    enable_buttons: Mapped[bool | None] = mapped_column(Boolean(), nullable=True, default=False)
    fallback_message: Mapped[str | None] = mapped_column(Text(), nullable=True)
    transfer_keywords: Mapped[list[str] | None] = mapped_column(JSON(), nullable=True)
    voice_id: Mapped[str | None] = mapped_column(String(length=120), nullable=True)

    business: Mapped[BusinessProfile] = relationship(back_populates="ai_config")


class Product(Base):
    """Catalog item. A null price means "not disclosed"."""

    __tablename__ = "products"
    __table_args__ = (Index("ix_products_business_created", "business_id", "created_at"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid(), primary_key=True, default=uuid.uuid4)
    business_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(), ForeignKey("business_profiles.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(length=255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text(), nullable=True)
    price: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    stock: Mapped[int | None] = mapped_column(Integer(), nullable=True, default=0)
    category: Mapped[str | None] = mapped_column(String(length=120), nullable=True)
    active: Mapped[bool] = mapped_column(Boolean(), nullable=False, default=True)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    business: Mapped[BusinessProfile] = relationship(back_populates="products")


class Policy(Base):
    """Typed business policy (delivery, exchange, payment, warranty, general)."""

    __tablename__ = "policies"
    __table_args__ = (Index("ix_policies_business_created", "business_id", "created_at"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid(), primary_key=True, default=uuid.uuid4)
    business_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(), ForeignKey("business_profiles.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(String(length=32), nullable=False, default="general")
    title: Mapped[str] = mapped_column(String(length=255), nullable=False)
    description: Mapped[str] = mapped_column(Text(), nullable=False)
    active: Mapped[bool] = mapped_column(Boolean(), nullable=False, default=True)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )


class Promotion(Base):
    """Discount campaign with a validity window."""

    __tablename__ = "promotions"
    __table_args__ = (Index("ix_promotions_business_created", "business_id", "created_at"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid(), primary_key=True, default=uuid.uuid4)
    business_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(), ForeignKey("business_profiles.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(length=255), nullable=False)
    description: Mapped[str] = mapped_column(Text(), nullable=False)
    discount_percentage: Mapped[Decimal | None] = mapped_column(Numeric(5, 2), nullable=True)
    discount_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    valid_from: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    valid_until: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    active: Mapped[bool] = mapped_column(Boolean(), nullable=False, default=True)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )


__all__ = ["AIConfig", "BusinessProfile", "Policy", "Product", "Promotion"]

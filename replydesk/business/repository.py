"""Database repository for business profiles and grounding records."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from ..models import AIConfig, BusinessProfile, Policy, Product, Promotion
from .models import (
    BusinessSnapshot,
    CatalogItem,
    PolicyItem,
    PromotionItem,
)


class BusinessRepository(Protocol):
    """Read-only access to the records maintained by the configuration UI."""

    def get(self, business_id: UUID) -> Optional[BusinessSnapshot]: ...

    def get_by_phone_id(self, phone_id: str) -> Optional[BusinessSnapshot]: ...

    def verify_token_exists(self, token: str) -> bool: ...

    def get_ai_config(self, business_id: UUID) -> Optional[Dict[str, Any]]: ...

    def list_active_products(self, business_id: UUID) -> List[CatalogItem]: ...

    def list_active_policies(self, business_id: UUID) -> List[PolicyItem]: ...

    def list_promotions(self, business_id: UUID, now: datetime) -> List[PromotionItem]: ...


class SqlAlchemyBusinessRepository:
    """SQLAlchemy implementation of :class:`BusinessRepository`.

    Every call opens its own short-lived session so the repository can be
    shared by the threads that gather grounding records concurrently.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    # Profiles -------------------------------------------------------------------
    def get(self, business_id: UUID) -> Optional[BusinessSnapshot]:
        with self._session_factory() as session:
            row = session.get(BusinessProfile, business_id)
            return self._snapshot(row) if row else None

    def get_by_phone_id(self, phone_id: str) -> Optional[BusinessSnapshot]:
        with self._session_factory() as session:
            row = session.scalars(
                select(BusinessProfile).where(
                    BusinessProfile.whatsapp_phone_id == phone_id,
                    BusinessProfile.active.is_(True),
                )
            ).first()
            return self._snapshot(row) if row else None

    def verify_token_exists(self, token: str) -> bool:
        with self._session_factory() as session:
            found = session.scalar(
                select(BusinessProfile.id)
                .where(BusinessProfile.webhook_verify_token == token)
                .limit(1)
            )
        return found is not None

    def get_ai_config(self, business_id: UUID) -> Optional[Dict[str, Any]]:
        with self._session_factory() as session:
            row = session.scalars(
                select(AIConfig).where(AIConfig.business_id == business_id)
            ).first()
            if row is None:
                return None
            return {
                "response_style": row.response_style,
                "enable_audio": row.enable_audio,
                "enable_buttons": row.enable_buttons,
                "fallback_message": row.fallback_message,
                "transfer_keywords": list(row.transfer_keywords or []),
                "voice_id": row.voice_id,
            }

    # Grounding records ----------------------------------------------------------
    def list_active_products(self, business_id: UUID) -> List[CatalogItem]:
        with self._session_factory() as session:
            rows = session.scalars(
                select(Product)
                .where(Product.business_id == business_id, Product.active.is_(True))
                .order_by(Product.created_at, Product.id)
            ).all()
            return [
                CatalogItem(
                    name=row.name,
                    description=row.description,
                    price=row.price,
                    stock=row.stock,
                    category=row.category,
                )
                for row in rows
            ]

    def list_active_policies(self, business_id: UUID) -> List[PolicyItem]:
        with self._session_factory() as session:
            rows = session.scalars(
                select(Policy)
                .where(Policy.business_id == business_id, Policy.active.is_(True))
                .order_by(Policy.created_at, Policy.id)
            ).all()
            return [
                PolicyItem(type=row.type, title=row.title, description=row.description)
                for row in rows
            ]

    def list_promotions(self, business_id: UUID, now: datetime) -> List[PromotionItem]:
        with self._session_factory() as session:
            rows = session.scalars(
                select(Promotion)
                .where(Promotion.business_id == business_id, Promotion.active.is_(True))
                .order_by(Promotion.created_at, Promotion.id)
            ).all()
            items = [
                PromotionItem(
                    title=row.title,
                    description=row.description,
                    discount_percentage=row.discount_percentage,
                    discount_amount=row.discount_amount,
                    valid_from=row.valid_from,
                    valid_until=row.valid_until,
                )
                for row in rows
            ]
        return [item for item in items if item.is_valid_at(now)]

    # Helpers --------------------------------------------------------------------
    @staticmethod
    def _snapshot(row: BusinessProfile) -> BusinessSnapshot:
        return BusinessSnapshot(
            id=row.id,
            name=row.name,
            tone=row.tone,
            ai_name=row.ai_name,
            description=row.description,
            industry=row.industry,
            ai_personality=row.ai_personality,
            whatsapp_token=row.whatsapp_token,
            whatsapp_phone_id=row.whatsapp_phone_id,
        )


__all__ = ["BusinessRepository", "SqlAlchemyBusinessRepository"]

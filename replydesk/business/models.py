"""Read-only snapshots of business records used for grounding."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any
from uuid import UUID


def as_utc(value: datetime | None) -> datetime | None:
    """Treat naive timestamps as UTC so comparisons never mix kinds."""

    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class BusinessSnapshot:
    """Identity and credentials of the business driving a conversation."""

    id: UUID
    name: str
    tone: str = "friendly"
    ai_name: str = "IARA"
    description: str | None = None
    industry: str | None = None
    ai_personality: str | None = None
    whatsapp_token: str | None = None
    whatsapp_phone_id: str | None = None


@dataclass(frozen=True)
class CatalogItem:
    name: str
    description: str | None = None
    price: Decimal | None = None
    stock: int | None = None
    category: str | None = None


@dataclass(frozen=True)
class PolicyItem:
    type: str
    title: str
    description: str


@dataclass(frozen=True)
class PromotionItem:
    title: str
    description: str
    discount_percentage: Decimal | None = None
    discount_amount: Decimal | None = None
    valid_from: datetime | None = None
    valid_until: datetime | None = None

    def is_valid_at(self, now: datetime) -> bool:
        """A promotion counts when it has no end date or ends after ``now``."""

        until = as_utc(self.valid_until)
        return until is None or until > as_utc(now)


@dataclass(frozen=True)
class BusinessRecords:
    """Grounding inputs gathered for one reply."""

    catalog: list[CatalogItem] = field(default_factory=list)
    policies: list[PolicyItem] = field(default_factory=list)
    promotions: list[PromotionItem] = field(default_factory=list)

    def counts(self) -> dict[str, Any]:
        return {
            "products_count": len(self.catalog),
            "policies_count": len(self.policies),
            "promotions_count": len(self.promotions),
        }


__all__ = [
    "BusinessRecords",
    "BusinessSnapshot",
    "CatalogItem",
    "PolicyItem",
    "PromotionItem",
    "as_utc",
]

"""Business profile and grounding record access."""

from .models import (
    BusinessRecords,
    BusinessSnapshot,
    CatalogItem,
    PolicyItem,
    PromotionItem,
)
from .repository import BusinessRepository, SqlAlchemyBusinessRepository

__all__ = [
    "BusinessRecords",
    "BusinessRepository",
    "BusinessSnapshot",
    "CatalogItem",
    "PolicyItem",
    "PromotionItem",
    "SqlAlchemyBusinessRepository",
]

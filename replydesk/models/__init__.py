"""SQLAlchemy declarative base and pipeline models.

This package hosts the SQLAlchemy models read and written by the webhook
pipeline. It exposes a single declarative ``Base`` class that other modules can
import when creating tables. Individual models live in dedicated modules within
this package.
"""

from __future__ import annotations

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy declarative models."""


# Re-export models for convenience so callers can import them via
# ``from replydesk.models import Conversation`` instead of touching submodules.
from .business import AIConfig, BusinessProfile, Policy, Product, Promotion
from .conversation import Conversation, Message


__all__ = [
    "AIConfig",
    "Base",
    "BusinessProfile",
    "Conversation",
    "Message",
    "Policy",
    "Product",
    "Promotion",
]

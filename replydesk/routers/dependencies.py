"""Shared FastAPI dependencies for the HTTP routes."""

from __future__ import annotations

from functools import lru_cache

from fastapi import HTTPException
from sqlalchemy.orm import Session, sessionmaker

from ..models.session import get_sessionmaker
from ..pipeline import ChatSimulator, WebhookPipeline


@lru_cache(maxsize=1)
def _session_factory() -> sessionmaker[Session]:
    return get_sessionmaker()


@lru_cache(maxsize=1)
def _pipeline() -> WebhookPipeline:
    return WebhookPipeline.from_settings(_session_factory())


def get_pipeline() -> WebhookPipeline:
    try:
        return _pipeline()
    except RuntimeError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc


def get_simulator() -> ChatSimulator:
    return get_pipeline().simulator()


def reset_dependencies() -> None:
    """Close and forget the cached pipeline (used on shutdown and in tests)."""

    if _pipeline.cache_info().currsize:
        _pipeline().close()
    _pipeline.cache_clear()
    _session_factory.cache_clear()


__all__ = ["get_pipeline", "get_simulator", "reset_dependencies"]

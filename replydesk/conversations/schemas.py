"""Pydantic schemas for the webhook and simulator APIs."""

from __future__ import annotations

from uuid import UUID

from pydantic import BaseModel, Field


class PipelineResultOut(BaseModel):
    provider_message_id: str | None = None
    state: str
    outcome: str
    conversation_id: UUID | None = None
    reply_dispatched: bool = False
    error: str | None = None


class DeliveryReportOut(BaseModel):
    received: int = 0
    processed: int = 0
    failed: int = 0
    results: list[PipelineResultOut] = Field(default_factory=list)


class ChatSimulationRequest(BaseModel):
    business_id: UUID
    message: str = Field(min_length=1)
    conversation_id: UUID | None = None


class ContextUsage(BaseModel):
    business: str
    products_count: int
    policies_count: int
    promotions_count: int
    conversation_history_count: int


class ChatSimulationResponse(BaseModel):
    response: str
    context_used: ContextUsage

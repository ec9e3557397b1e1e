"""States and results reported by the webhook pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from uuid import UUID


class PipelineState(str, Enum):
    RECEIVED = "received"
    RESOLVED = "resolved"
    CONTENT_EXTRACTED = "content_extracted"
    PERSISTED_INBOUND = "persisted_inbound"
    CONTEXT_BUILT = "context_built"
    REPLY_GENERATED = "reply_generated"
    PERSISTED_OUTBOUND = "persisted_outbound"
    DISPATCHED = "dispatched"
    AUDIO_SYNTHESIZED = "audio_synthesized"
    AUDIO_DISPATCHED = "audio_dispatched"
    DONE = "done"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def terminal(self) -> bool:
        return self in {PipelineState.DONE, PipelineState.FAILED, PipelineState.SKIPPED}


class Outcome(str, Enum):
    """Why a pipeline run ended the way it did."""

    REPLIED = "replied"
    FALLBACK = "fallback"
    HANDOFF = "handoff"
    NO_REPLY = "no_reply"
    DUPLICATE = "duplicate"
    BUSINESS_NOT_FOUND = "business_not_found"
    ERROR = "error"
    PENDING = "pending"


@dataclass
class PipelineResult:
    provider_message_id: str | None
    state: PipelineState = PipelineState.RECEIVED
    outcome: Outcome = Outcome.PENDING
    conversation_id: UUID | None = None
    inbound_message_id: UUID | None = None
    reply_text: str | None = None
    ai_response_generated: bool = False
    reply_dispatched: bool = False
    audio_dispatched: bool = False
    error: str | None = None

    @property
    def failed(self) -> bool:
        return self.state is PipelineState.FAILED


@dataclass
class DeliveryReport:
    received: int = 0
    results: list[PipelineResult] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return sum(1 for r in self.results if not r.failed)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if r.failed)


__all__ = ["DeliveryReport", "Outcome", "PipelineResult", "PipelineState"]

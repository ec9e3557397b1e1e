"""Webhook processing pipeline."""

from .models import DeliveryReport, Outcome, PipelineResult, PipelineState
from .service import AUDIO_PLACEHOLDER, WebhookPipeline
from .simulator import ChatSimulator, SimulatedReply

__all__ = [
    "AUDIO_PLACEHOLDER",
    "ChatSimulator",
    "DeliveryReport",
    "Outcome",
    "PipelineResult",
    "PipelineState",
    "SimulatedReply",
    "WebhookPipeline",
]

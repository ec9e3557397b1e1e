"""Dashboard chat simulator: grounded replies without the messaging channel."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from ..app_logging import log_event
from ..assistant.completion import CompletionAdapter
from ..assistant.context import ContextAssembler, build_turns
from ..business.repository import BusinessRepository
from ..config import ReplySettings
from ..conversations.service import ConversationService
from ..errors import BusinessNotFoundError, ConfigurationError, ConversationNotFoundError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SimulatedReply:
    response: str
    context_used: dict[str, Any]


class ChatSimulator:
    """Answer a test message exactly like the webhook pipeline would.

    Completion failures are raised to the caller instead of being replaced
    by the fallback text so the dashboard can show what went wrong.
    """

    def __init__(
        self,
        businesses: BusinessRepository,
        conversations: ConversationService,
        assembler: ContextAssembler,
        completion: CompletionAdapter | None,
        *,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._businesses = businesses
        self._conversations = conversations
        self._assembler = assembler
        self._completion = completion
        self._clock = clock

    def simulate(
        self, business_id: UUID, message: str, conversation_id: UUID | None = None
    ) -> SimulatedReply:
        started = time.monotonic()
        business = self._businesses.get(business_id)
        if business is None:
            raise BusinessNotFoundError(f"Business {business_id} not found")
        conversation = None
        if conversation_id is not None:
            conversation = self._conversations.get_conversation(conversation_id)
            if conversation is None or conversation.business_id != business.id:
                raise ConversationNotFoundError(f"Conversation {conversation_id} not found")
        if self._completion is None:
            raise ConfigurationError("No completion backend configured")

        settings = ReplySettings.from_record(self._businesses.get_ai_config(business.id))
        context = self._assembler.assemble(
            business, settings, now=self._clock(), conversation_id=conversation_id
        )
        reply = self._completion.complete(build_turns(context, message))

        if conversation is not None:
            self._conversations.record_simulated_exchange(
                conversation,
                message,
                reply,
                processing_time_ms=int((time.monotonic() - started) * 1000),
            )
        log_event(
            logger,
            "simulator.replied",
            business_id=business.id,
            conversation_id=conversation_id,
            history_turns=len(context.history),
        )
        return SimulatedReply(response=reply, context_used=context.usage(business.name))


__all__ = ["ChatSimulator", "SimulatedReply"]

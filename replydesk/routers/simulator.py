"""Conversation simulator used by the dashboard to test the assistant."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from ..conversations import schemas as convo_schemas
from ..errors import (
    AdapterError,
    BusinessNotFoundError,
    ConfigurationError,
    ContextUnavailableError,
    ConversationNotFoundError,
)
from ..pipeline import ChatSimulator
from .dependencies import get_simulator

router = APIRouter(tags=["simulator"])


@router.post("/api/ai-chat", response_model=convo_schemas.ChatSimulationResponse)
def ai_chat(
    payload: convo_schemas.ChatSimulationRequest,
    simulator: Annotated[ChatSimulator, Depends(get_simulator)],
) -> convo_schemas.ChatSimulationResponse:
    try:
        reply = simulator.simulate(
            payload.business_id, payload.message, payload.conversation_id
        )
    except (BusinessNotFoundError, ConversationNotFoundError) as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except ConfigurationError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)
        ) from exc
    except (AdapterError, ContextUnavailableError) as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    return convo_schemas.ChatSimulationResponse(
        response=reply.response,
        context_used=convo_schemas.ContextUsage(**reply.context_used),
    )

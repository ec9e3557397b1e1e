"""WhatsApp Cloud API webhook routes."""

from __future__ import annotations

import json
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from fastapi.responses import PlainTextResponse
from starlette.concurrency import run_in_threadpool

from ..conversations import schemas as convo_schemas
from ..pipeline import DeliveryReport, WebhookPipeline
from .dependencies import get_pipeline

router = APIRouter(tags=["webhooks"])


def _report_out(report: DeliveryReport) -> convo_schemas.DeliveryReportOut:
    return convo_schemas.DeliveryReportOut(
        received=report.received,
        processed=report.processed,
        failed=report.failed,
        results=[
            convo_schemas.PipelineResultOut(
                provider_message_id=r.provider_message_id,
                state=r.state.value,
                outcome=r.outcome.value,
                conversation_id=r.conversation_id,
                reply_dispatched=r.reply_dispatched,
                error=r.error,
            )
            for r in report.results
        ],
    )


@router.get("/api/webhooks/whatsapp")
def verify_webhook(
    pipeline: Annotated[WebhookPipeline, Depends(get_pipeline)],
    mode: Annotated[str | None, Query(alias="hub.mode")] = None,
    token: Annotated[str | None, Query(alias="hub.verify_token")] = None,
    challenge: Annotated[str | None, Query(alias="hub.challenge")] = None,
) -> Response:
    """Answer the provider's subscription handshake."""
    echoed = pipeline.verify(mode, token, challenge)
    if echoed is None:
        return Response(status_code=status.HTTP_403_FORBIDDEN)
    return PlainTextResponse(echoed)


@router.post("/api/webhooks/whatsapp", response_model=convo_schemas.DeliveryReportOut)
async def receive_webhook(
    request: Request,
    pipeline: Annotated[WebhookPipeline, Depends(get_pipeline)],
) -> convo_schemas.DeliveryReportOut:
    body_bytes = await request.body()
    if not pipeline.adapter.verify_signature(
        body_bytes, request.headers, pipeline.settings.app_secret
    ):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature"
        )
    try:
        payload = json.loads(body_bytes.decode("utf-8")) if body_bytes else {}
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise HTTPException(
            status_code=400, detail=f"Invalid JSON payload: {exc}"
        ) from exc

    report = await run_in_threadpool(pipeline.handle_delivery, payload)
    return _report_out(report)

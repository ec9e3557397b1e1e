"""Inbound message processing pipeline.

One :class:`WebhookPipeline` instance serves every delivery. Each message
entry in a delivery runs through :meth:`WebhookPipeline.process_message`
independently; the steps inside one run are strictly sequential and every
transition is logged as a ``pipeline.<state>`` event.
"""

from __future__ import annotations

import hmac
import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ..app_logging import log_event
from ..assistant.completion import ChatCompletionAdapter, CompletionAdapter
from ..assistant.context import ContextAssembler, build_turns
from ..assistant.speech import ElevenLabsSynthesisAdapter, LocalAudioStore, SynthesisAdapter
from ..assistant.transcription import TranscriptionAdapter, WhisperTranscriptionAdapter
from ..business.models import BusinessSnapshot
from ..business.repository import BusinessRepository, SqlAlchemyBusinessRepository
from ..channels import get_adapter
from ..channels.whatsapp import WhatsAppAdapter, WhatsAppClient
from ..config import ReplySettings, Settings, get_settings
from ..conversations.models import (
    AudioContent,
    ConversationHandle,
    InboundMessage,
    TextContent,
)
from ..conversations.repository import SqlAlchemyConversationRepository
from ..conversations.service import ConversationService
from ..errors import ConfigurationError, ReplyDeskError
from .models import DeliveryReport, Outcome, PipelineResult, PipelineState
from .simulator import ChatSimulator

logger = logging.getLogger(__name__)

AUDIO_PLACEHOLDER = "Áudio não pôde ser transcrito"

ClientFactory = Callable[[BusinessSnapshot], WhatsAppClient]


@dataclass(frozen=True)
class ExtractedContent:
    text: str
    transcription: str | None = None
    media_url: str | None = None
    replyable: bool = True


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WebhookPipeline:
    """Turn channel deliveries into persisted, grounded, dispatched replies."""

    def __init__(
        self,
        businesses: BusinessRepository,
        conversations: ConversationService,
        assembler: ContextAssembler,
        *,
        completion: CompletionAdapter | None = None,
        transcription: TranscriptionAdapter | None = None,
        synthesis: SynthesisAdapter | None = None,
        audio_store: LocalAudioStore | None = None,
        client_factory: ClientFactory | None = None,
        settings: Settings | None = None,
        adapter: WhatsAppAdapter | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.settings = settings or get_settings()
        self._businesses = businesses
        self._conversations = conversations
        self._assembler = assembler
        self._completion = completion
        self._transcription = transcription
        self._synthesis = synthesis
        self._audio_store = audio_store
        self._client_factory = client_factory or self._default_client
        self.adapter = adapter or get_adapter("whatsapp")()
        self._clock = clock

    @classmethod
    def from_settings(
        cls,
        session_factory: sessionmaker[Session],
        settings: Settings | None = None,
    ) -> "WebhookPipeline":
        """Wire the SQL repositories and the hosted backends.

        Backends whose keys are missing are left unset; the pipeline then
        degrades (placeholder transcript, fallback reply, no audio).
        """

        settings = settings or get_settings()
        businesses = SqlAlchemyBusinessRepository(session_factory)
        conversations = ConversationService(SqlAlchemyConversationRepository(session_factory))
        assembler = ContextAssembler(
            businesses,
            conversations.recent_messages,
            history_limit=settings.history_limit,
            timeout=settings.context_timeout_seconds,
        )
        return cls(
            businesses,
            conversations,
            assembler,
            completion=_optional_backend("completion", ChatCompletionAdapter.from_settings, settings),
            transcription=_optional_backend(
                "transcription", WhisperTranscriptionAdapter.from_settings, settings
            ),
            synthesis=_optional_backend("synthesis", ElevenLabsSynthesisAdapter.from_settings, settings),
            audio_store=LocalAudioStore(
                settings.media_dir,
                settings.public_base_url,
                retention_seconds=settings.media_retention_hours * 3600,
            ),
            settings=settings,
        )

    def close(self) -> None:
        self._assembler.close()

    def simulator(self) -> ChatSimulator:
        """Return a chat simulator sharing this pipeline's backends."""

        return ChatSimulator(
            self._businesses,
            self._conversations,
            self._assembler,
            self._completion,
            clock=self._clock,
        )

    # ------------------------------------------------------------------
    # Verification

    def verify(self, mode: str | None, token: str | None, challenge: str | None) -> str | None:
        """Return ``challenge`` when the handshake is valid, else ``None``.

        Both the process-wide secret and the per-business tokens are always
        checked so the response time does not reveal which one matched.
        """

        candidate = token or ""
        expected = self.settings.verify_token or ""
        env_match = hmac.compare_digest(candidate.encode("utf-8"), expected.encode("utf-8"))
        env_match = env_match and bool(expected)
        business_match = False
        if candidate:
            try:
                business_match = self._businesses.verify_token_exists(candidate)
            except SQLAlchemyError as exc:
                log_event(
                    logger,
                    "webhook.verify_lookup_failed",
                    level=logging.ERROR,
                    error_type=type(exc).__name__,
                    error=str(exc),
                )
        if mode == "subscribe" and (env_match or business_match):
            log_event(logger, "webhook.verified")
            return challenge or ""
        log_event(logger, "webhook.verification_rejected", level=logging.WARNING, mode=mode)
        return None

    # ------------------------------------------------------------------
    # Delivery

    def handle_delivery(self, payload: Mapping[str, Any]) -> DeliveryReport:
        """Process every message entry in ``payload`` independently."""

        messages = list(self.adapter.parse_incoming(payload))
        report = DeliveryReport(received=len(messages))
        if not messages:
            log_event(logger, "webhook.no_messages", level=logging.DEBUG)
        for message in messages:
            try:
                result = self.process_message(message)
            except Exception as exc:
                log_event(
                    logger,
                    "pipeline.failed",
                    level=logging.ERROR,
                    exc_info=True,
                    provider_message_id=message.provider_message_id,
                    error=str(exc),
                )
                result = PipelineResult(
                    provider_message_id=message.provider_message_id or None,
                    state=PipelineState.FAILED,
                    outcome=Outcome.ERROR,
                    error=str(exc),
                )
            report.results.append(result)
        return report

    def process_message(self, message: InboundMessage) -> PipelineResult:
        started = time.monotonic()
        result = PipelineResult(provider_message_id=message.provider_message_id or None)
        self._advance(
            result,
            PipelineState.RECEIVED,
            message_type=message.content.kind,
            business_phone_id=message.business_phone_id,
        )

        if self._conversations.is_duplicate(message.provider_message_id):
            return self._skip(result, Outcome.DUPLICATE)

        business = self._businesses.get_by_phone_id(message.business_phone_id)
        if business is None:
            return self._skip(result, Outcome.BUSINESS_NOT_FOUND, level=logging.WARNING)
        settings = ReplySettings.from_record(self._businesses.get_ai_config(business.id))

        try:
            conversation = self._conversations.resolve(
                business.id,
                message.sender_id,
                message.sender_id,
                contact_name=message.sender_name,
                at=message.sent_at,
            )
        except SQLAlchemyError as exc:
            return self._fail(result, exc)
        result.conversation_id = conversation.id
        self._advance(result, PipelineState.RESOLVED, business_id=business.id, created=conversation.created)

        extracted = self._extract(business, message, result)
        self._advance(result, PipelineState.CONTENT_EXTRACTED, replyable=extracted.replyable)

        try:
            inbound = self._conversations.record_inbound(
                conversation,
                message,
                content=extracted.text,
                transcription=extracted.transcription,
                media_url=extracted.media_url,
            )
        except SQLAlchemyError as exc:
            return self._fail(result, exc)
        if inbound is None:
            return self._skip(result, Outcome.DUPLICATE)
        result.inbound_message_id = inbound.id
        self._advance(result, PipelineState.PERSISTED_INBOUND)

        if not extracted.replyable:
            result.outcome = Outcome.NO_REPLY
            self._advance(result, PipelineState.DONE, outcome=result.outcome.value)
            return result

        try:
            self._reply(business, settings, conversation, extracted.text, result, started)
        except Exception as exc:
            failed_at = result.state
            self._fail(result, exc, unexpected=not isinstance(exc, (ReplyDeskError, SQLAlchemyError)))
            self._dispatch_fallback(business, settings, conversation, result, failed_at)
        return result

    # ------------------------------------------------------------------
    # Steps

    def _extract(
        self, business: BusinessSnapshot, message: InboundMessage, result: PipelineResult
    ) -> ExtractedContent:
        content = message.content
        if isinstance(content, TextContent):
            return ExtractedContent(text=content.body)
        if isinstance(content, AudioContent):
            media_url = None
            try:
                client = self._client_factory(business)
                media_url = client.get_media_url(content.media_id)
                audio = client.download_media(media_url)
                if self._transcription is None:
                    raise ConfigurationError("No transcription backend configured")
                text = self._transcription.transcribe(
                    audio, filename="audio.ogg", mime_type=content.mime_type
                )
            except Exception as exc:
                # Any media or transcription failure degrades to the placeholder text.
                log_event(
                    logger,
                    "pipeline.transcription_failed",
                    level=logging.WARNING,
                    exc_info=not isinstance(exc, ReplyDeskError),
                    provider_message_id=result.provider_message_id,
                    error_type=type(exc).__name__,
                    error=str(exc),
                )
                return ExtractedContent(text=AUDIO_PLACEHOLDER, media_url=media_url)
            return ExtractedContent(text=text, transcription=text, media_url=media_url)
        return ExtractedContent(text="", replyable=False)

    def _reply(
        self,
        business: BusinessSnapshot,
        settings: ReplySettings,
        conversation: ConversationHandle,
        user_text: str,
        result: PipelineResult,
        started: float,
    ) -> None:
        handoff = self._conversations.evaluate_handoff(user_text, settings)
        if handoff.should_handoff:
            log_event(
                logger,
                "pipeline.handoff",
                provider_message_id=result.provider_message_id,
                conversation_id=conversation.id,
                keyword=handoff.keyword,
            )
            reply_text, ai_generated, outcome = settings.handoff_message, False, Outcome.HANDOFF
        else:
            reply_text, ai_generated = self._generate(business, settings, conversation, user_text, result)
            outcome = Outcome.REPLIED if ai_generated else Outcome.FALLBACK
        result.reply_text = reply_text
        result.ai_response_generated = ai_generated
        self._advance(result, PipelineState.REPLY_GENERATED, ai_response_generated=ai_generated)

        elapsed_ms = int((time.monotonic() - started) * 1000)
        self._conversations.record_outbound(
            conversation,
            content=reply_text,
            ai_generated=ai_generated,
            processing_time_ms=elapsed_ms,
        )
        self._advance(result, PipelineState.PERSISTED_OUTBOUND, processing_time_ms=elapsed_ms)

        client = self._client_factory(business)
        client.send_text(conversation.contact_phone, reply_text)
        result.reply_dispatched = True
        self._advance(result, PipelineState.DISPATCHED)

        if settings.enable_audio and ai_generated:
            self._send_audio(client, settings, conversation, reply_text, result)

        result.outcome = outcome
        self._advance(result, PipelineState.DONE, outcome=outcome.value)

    def _generate(
        self,
        business: BusinessSnapshot,
        settings: ReplySettings,
        conversation: ConversationHandle,
        user_text: str,
        result: PipelineResult,
    ) -> tuple[str, bool]:
        """Return ``(reply, ai_generated)``; backend failures yield the fallback text."""

        try:
            context = self._assembler.assemble(
                business,
                settings,
                now=self._clock(),
                conversation_id=conversation.id,
                exclude_message_id=result.inbound_message_id,
            )
            self._advance(
                result,
                PipelineState.CONTEXT_BUILT,
                history_turns=len(context.history),
                **context.records.counts(),
            )
            if self._completion is None:
                raise ConfigurationError("No completion backend configured")
            reply = self._completion.complete(build_turns(context, user_text))
        except ReplyDeskError as exc:
            log_event(
                logger,
                "pipeline.completion_failed",
                level=logging.WARNING,
                provider_message_id=result.provider_message_id,
                conversation_id=conversation.id,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            return settings.fallback_message, False
        return reply, True

    def _send_audio(
        self,
        client: WhatsAppClient,
        settings: ReplySettings,
        conversation: ConversationHandle,
        reply_text: str,
        result: PipelineResult,
    ) -> None:
        """Synthesize and send the reply as audio; failures only cost the audio."""

        if self._synthesis is None or self._audio_store is None:
            log_event(logger, "pipeline.audio_skipped", reason="no_synthesis_backend")
            return
        try:
            audio = self._synthesis.synthesize(reply_text, voice_id=settings.voice_id)
            url = self._audio_store.save(audio)
            if not url:
                log_event(logger, "pipeline.audio_skipped", reason="no_public_url")
                return
            self._advance(result, PipelineState.AUDIO_SYNTHESIZED)
            client.send_audio(conversation.contact_phone, url)
            self._conversations.record_outbound(
                conversation,
                content="",
                ai_generated=True,
                message_type="audio",
                media_url=url,
            )
            result.audio_dispatched = True
            self._advance(result, PipelineState.AUDIO_DISPATCHED)
        except (ReplyDeskError, SQLAlchemyError, OSError) as exc:
            log_event(
                logger,
                "pipeline.audio_failed",
                level=logging.WARNING,
                provider_message_id=result.provider_message_id,
                error=str(exc),
            )

    def _dispatch_fallback(
        self,
        business: BusinessSnapshot,
        settings: ReplySettings,
        conversation: ConversationHandle,
        result: PipelineResult,
        failed_at: PipelineState,
    ) -> None:
        """Best-effort, single attempt to send the fallback text after a failure."""

        if result.reply_dispatched:
            return
        if failed_at is PipelineState.PERSISTED_OUTBOUND and result.reply_text == settings.fallback_message:
            # The fallback itself was just rejected by the provider.
            return
        try:
            self._client_factory(business).send_text(
                conversation.contact_phone, settings.fallback_message
            )
        except ReplyDeskError as exc:
            log_event(
                logger,
                "pipeline.fallback_failed",
                level=logging.ERROR,
                provider_message_id=result.provider_message_id,
                error=str(exc),
            )
            return
        log_event(
            logger,
            "pipeline.fallback_dispatched",
            provider_message_id=result.provider_message_id,
            conversation_id=conversation.id,
        )

    # ------------------------------------------------------------------
    # Helpers

    def _default_client(self, business: BusinessSnapshot) -> WhatsAppClient:
        # Business record wins; the process-wide values are only a fallback.
        return WhatsAppClient(
            business.whatsapp_token or self.settings.whatsapp_access_token,
            business.whatsapp_phone_id or self.settings.whatsapp_phone_number_id,
            base_url=self.settings.graph_url,
            timeout=self.settings.http_timeout_seconds,
            adapter=self.adapter,
        )

    def _advance(self, result: PipelineResult, state: PipelineState, **fields: Any) -> None:
        result.state = state
        log_event(
            logger,
            f"pipeline.{state.value}",
            provider_message_id=result.provider_message_id,
            conversation_id=result.conversation_id,
            **fields,
        )

    def _skip(
        self, result: PipelineResult, outcome: Outcome, *, level: int = logging.INFO
    ) -> PipelineResult:
        result.state = PipelineState.SKIPPED
        result.outcome = outcome
        log_event(
            logger,
            "pipeline.skipped",
            level=level,
            provider_message_id=result.provider_message_id,
            outcome=outcome.value,
        )
        return result

    def _fail(
        self, result: PipelineResult, exc: Exception, *, unexpected: bool = False
    ) -> PipelineResult:
        log_event(
            logger,
            "pipeline.failed",
            level=logging.ERROR,
            exc_info=unexpected,
            provider_message_id=result.provider_message_id,
            conversation_id=result.conversation_id,
            failed_at=result.state.value,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        result.state = PipelineState.FAILED
        result.outcome = Outcome.ERROR
        result.error = str(exc)
        return result


def _optional_backend(name: str, factory: Callable[[Settings], Any], settings: Settings) -> Any | None:
    try:
        return factory(settings)
    except ConfigurationError as exc:
        log_event(logger, "pipeline.backend_unavailable", level=logging.WARNING, backend=name, error=str(exc))
        return None


__all__ = ["AUDIO_PLACEHOLDER", "ExtractedContent", "WebhookPipeline"]

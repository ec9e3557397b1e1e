import pathlib
import sys
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

import pytest
from fastapi import FastAPI, Request
from sqlalchemy.orm import Session, sessionmaker

sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))
from replydesk.app_logging import init_logging
from replydesk.assistant.context import ContextAssembler
from replydesk.business.repository import SqlAlchemyBusinessRepository
from replydesk.config import Settings
from replydesk.conversations.repository import SqlAlchemyConversationRepository
from replydesk.conversations.service import ConversationService
from replydesk.errors import AdapterError, DispatchError
from replydesk.models import AIConfig, BusinessProfile, Policy, Product, Promotion
from replydesk.models.session import create_schema, get_engine, get_sessionmaker
from replydesk.pipeline import WebhookPipeline

FIXED_NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)
PHONE_ID = "1029384756"
CONTACT = "5511999990000"


# ---------------------------------------------------------------------------
# Fake adapters


class FakeCompletion:
    """Records the turns it receives and returns ``reply`` (or ``reply(turns)``)."""

    def __init__(self, reply: Any = "Olá! Posso ajudar com nossos produtos.") -> None:
        self.reply = reply
        self.calls: list[list[Any]] = []

    def complete(self, turns, **parameters):
        self.calls.append(list(turns))
        if callable(self.reply):
            return self.reply(turns)
        return self.reply


class FailingCompletion:
    def __init__(self) -> None:
        self.calls = 0

    def complete(self, turns, **parameters):
        self.calls += 1
        raise AdapterError("quota exceeded", provider="deepseek", status_code=429)


class FakeTranscription:
    name = "fake"

    def __init__(self, text: str = "quero saber o preço da camisa") -> None:
        self.text = text
        self.calls: list[bytes] = []

    def transcribe(self, audio: bytes, *, filename: str = "audio.ogg", mime_type=None) -> str:
        self.calls.append(audio)
        return self.text


class FailingTranscription:
    name = "failing"

    def transcribe(self, audio: bytes, *, filename: str = "audio.ogg", mime_type=None) -> str:
        raise AdapterError("whisper unavailable", provider="whisper")


class FakeSynthesis:
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.calls: list[tuple[str, str | None]] = []

    def synthesize(self, text: str, *, voice_id: str | None = None) -> bytes:
        self.calls.append((text, voice_id))
        if self.fail:
            raise AdapterError("tts down", provider="elevenlabs")
        return b"ID3-fake-mp3"


class FakeAudioStore:
    def __init__(self, url: str | None = "https://bot.example/media/reply.mp3") -> None:
        self.url = url
        self.saved: list[bytes] = []

    def save(self, audio: bytes, *, suffix: str = ".mp3") -> str | None:
        self.saved.append(audio)
        return self.url


class FakeWhatsAppClient:
    """Stands in for :class:`WhatsAppClient`; records every send."""

    def __init__(self, *, fail_text: bool = False, fail_audio: bool = False) -> None:
        self.fail_text = fail_text
        self.fail_audio = fail_audio
        self.sent: list[tuple[str, str, str]] = []
        self.media_requests: list[str] = []

    def get_media_url(self, media_id: str) -> str:
        self.media_requests.append(media_id)
        return f"https://lookaside.example/{media_id}"

    def download_media(self, url: str) -> bytes:
        return b"OggS-fake-audio"

    def send_text(self, to: str, body: str) -> dict:
        if self.fail_text:
            raise DispatchError("WhatsApp send returned HTTP 400", provider="whatsapp", status_code=400)
        self.sent.append(("text", to, body))
        return {"messages": [{"id": f"wamid.out.{len(self.sent)}"}]}

    def send_audio(self, to: str, link: str) -> dict:
        if self.fail_audio:
            raise DispatchError("WhatsApp send returned HTTP 500", provider="whatsapp", status_code=500)
        self.sent.append(("audio", to, link))
        return {}

    @property
    def texts(self) -> list[str]:
        return [body for kind, _, body in self.sent if kind == "text"]


# ---------------------------------------------------------------------------
# Webhook payloads


class WhatsAppPayloads:
    @staticmethod
    def text(message_id: str, body: str, *, sender: str = CONTACT, timestamp: int = 1760788800) -> dict:
        return {
            "from": sender,
            "id": message_id,
            "timestamp": str(timestamp),
            "type": "text",
            "text": {"body": body},
        }

    @staticmethod
    def audio(message_id: str, media_id: str = "media-1", *, sender: str = CONTACT) -> dict:
        return {
            "from": sender,
            "id": message_id,
            "timestamp": "1760788800",
            "type": "audio",
            "audio": {"id": media_id, "mime_type": "audio/ogg; codecs=opus"},
        }

    @staticmethod
    def image(message_id: str, *, sender: str = CONTACT) -> dict:
        return {
            "from": sender,
            "id": message_id,
            "timestamp": "1760788800",
            "type": "image",
            "image": {"id": "img-1", "caption": "olha essa", "mime_type": "image/jpeg"},
        }

    @staticmethod
    def delivery(*messages: dict, phone_id: str = PHONE_ID, name: str = "Maria") -> dict:
        senders = sorted({m["from"] for m in messages})
        return {
            "object": "whatsapp_business_account",
            "entry": [
                {
                    "id": "WABA-1",
                    "changes": [
                        {
                            "field": "messages",
                            "value": {
                                "messaging_product": "whatsapp",
                                "metadata": {
                                    "display_phone_number": "551140000000",
                                    "phone_number_id": phone_id,
                                },
                                "contacts": [
                                    {"wa_id": s, "profile": {"name": name}} for s in senders
                                ],
                                "messages": list(messages),
                            },
                        }
                    ],
                }
            ],
        }


@pytest.fixture
def payloads() -> type[WhatsAppPayloads]:
    return WhatsAppPayloads


# ---------------------------------------------------------------------------
# Database


@pytest.fixture
def session_factory(tmp_path) -> sessionmaker[Session]:
    engine = get_engine(f"sqlite+pysqlite:///{tmp_path / 'replydesk.db'}")
    create_schema(engine)
    factory = get_sessionmaker(engine=engine)
    yield factory
    engine.dispose()


@pytest.fixture
def make_business(session_factory):
    """Insert a business with optional AI config and grounding records."""

    def _make(
        *,
        name: str = "Loja Azul",
        phone_id: str | None = PHONE_ID,
        whatsapp_token: str | None = "business-token",
        verify_token: str | None = None,
        active: bool = True,
        ai_config: dict | None = None,
        products: list[dict] | None = None,
        policies: list[dict] | None = None,
        promotions: list[dict] | None = None,
    ) -> uuid.UUID:
        with session_factory.begin() as session:
            business = BusinessProfile(
                name=name,
                tone="friendly",
                ai_name="IARA",
                whatsapp_token=whatsapp_token,
                whatsapp_phone_id=phone_id,
                webhook_verify_token=verify_token,
                active=active,
            )
            session.add(business)
            session.flush()
            if ai_config is not None:
                session.add(AIConfig(business_id=business.id, **ai_config))
            for row in products or []:
                session.add(Product(business_id=business.id, **row))
            for row in policies or []:
                session.add(Policy(business_id=business.id, **row))
            for row in promotions or []:
                session.add(Promotion(business_id=business.id, **row))
            return business.id

    return _make


@pytest.fixture
def loja_azul(make_business) -> uuid.UUID:
    return make_business(
        products=[
            {
                "name": "Camisa Polo",
                "description": "Camisa polo de algodão",
                "price": Decimal("89.90"),
                "stock": 5,
                "category": "Camisas",
            }
        ]
    )


# ---------------------------------------------------------------------------
# Pipeline


_UNSET: Any = object()


@dataclass
class PipelineHarness:
    pipeline: WebhookPipeline
    client: FakeWhatsAppClient
    completion: Any
    conversations: ConversationService
    clients_requested: list[Any] = field(default_factory=list)


@pytest.fixture
def pipeline_factory(session_factory):
    built: list[WebhookPipeline] = []

    def _build(
        *,
        completion: Any = _UNSET,
        transcription: Any = None,
        synthesis: Any = None,
        audio_store: Any = None,
        client: FakeWhatsAppClient | None = None,
        settings: Settings | None = None,
    ) -> PipelineHarness:
        businesses = SqlAlchemyBusinessRepository(session_factory)
        conversations = ConversationService(SqlAlchemyConversationRepository(session_factory))
        assembler = ContextAssembler(businesses, conversations.recent_messages, history_limit=10)
        client = client or FakeWhatsAppClient()
        completion = FakeCompletion() if completion is _UNSET else completion
        requested: list[Any] = []

        def _client_factory(business):
            requested.append(business)
            return client

        pipeline = WebhookPipeline(
            businesses,
            conversations,
            assembler,
            completion=completion,
            transcription=transcription,
            synthesis=synthesis,
            audio_store=audio_store,
            client_factory=_client_factory,
            settings=settings or Settings(verify_token="env-secret"),
            clock=lambda: FIXED_NOW,
        )
        built.append(pipeline)
        return PipelineHarness(pipeline, client, completion, conversations, requested)

    yield _build
    for pipeline in built:
        pipeline.close()


# ---------------------------------------------------------------------------
# Logging


@pytest.fixture
def app_factory(monkeypatch):
    def _create_app(log_dir: str, log_request_bodies: bool = False):
        """Create a FastAPI app with logging initialised."""
        monkeypatch.setenv("LOG_DIR", str(log_dir))
        if log_request_bodies:
            monkeypatch.setenv("LOG_REQUEST_BODIES", "true")
        app = FastAPI()

        @app.post("/echo")
        async def echo(request: Request):
            return await request.json()

        init_logging(app)
        return app

    return _create_app

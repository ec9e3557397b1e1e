"""Process-wide configuration and per-business reply settings.

Process settings are read once from the environment (optionally seeded from a
``.env`` file) and cached. Per-business tuning lives in
:class:`ReplySettings`, which is resolved from the stored AI configuration at
the start of every pipeline run so the rest of the pipeline never has to guess
defaults for missing fields.
"""

from __future__ import annotations

import dataclasses
import os
from collections.abc import Mapping
from functools import lru_cache
from typing import Any

from dotenv import load_dotenv

load_dotenv()

RESPONSE_STYLES = ("concise", "balanced", "detailed")
DEFAULT_RESPONSE_STYLE = "balanced"
DEFAULT_FALLBACK_MESSAGE = (
    "Desculpe, estou com dificuldades técnicas no momento. "
    "Tente novamente em alguns instantes."
)
DEFAULT_HANDOFF_MESSAGE = (
    "Vou transferir você para um de nossos atendentes. "
    "Em instantes alguém da equipe continua o atendimento."
)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    return int(raw) if raw else default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    return float(raw) if raw else default


@dataclasses.dataclass(frozen=True)
class Settings:
    """Runtime configuration for the webhook pipeline."""

    database_url: str | None = None
    verify_token: str | None = None
    app_secret: str | None = None
    whatsapp_access_token: str | None = None
    whatsapp_phone_number_id: str | None = None
    graph_url: str = "https://graph.facebook.com/v17.0"
    completion_provider: str = "deepseek"
    completion_model: str = "deepseek-chat"
    completion_max_tokens: int = 800
    completion_temperature: float = 0.7
    transcription_model: str = "whisper-1"
    transcription_language: str = "pt"
    voice_id: str = "pNInz6obpgDQGcFmaJgB"
    tts_model: str = "eleven_multilingual_v2"
    media_dir: str = "tmp/media"
    public_base_url: str | None = None
    media_retention_hours: float = 24.0
    history_limit: int = 10
    http_timeout_seconds: float = 20.0
    context_timeout_seconds: float = 10.0


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings from the environment with development defaults."""

    return Settings(
        database_url=os.getenv("DATABASE_URL"),
        verify_token=os.getenv("WHATSAPP_VERIFY_TOKEN") or None,
        app_secret=os.getenv("WHATSAPP_APP_SECRET") or None,
        whatsapp_access_token=os.getenv("WHATSAPP_ACCESS_TOKEN") or None,
        whatsapp_phone_number_id=os.getenv("WHATSAPP_PHONE_NUMBER_ID") or None,
        graph_url=os.getenv("WHATSAPP_GRAPH_URL", "https://graph.facebook.com/v17.0"),
        completion_provider=os.getenv("COMPLETION_PROVIDER", "deepseek").lower(),
        completion_model=os.getenv("COMPLETION_MODEL", "deepseek-chat"),
        completion_max_tokens=_env_int("COMPLETION_MAX_TOKENS", 800),
        completion_temperature=_env_float("COMPLETION_TEMPERATURE", 0.7),
        transcription_model=os.getenv("TRANSCRIPTION_MODEL", "whisper-1"),
        transcription_language=os.getenv("TRANSCRIPTION_LANGUAGE", "pt"),
        voice_id=os.getenv("ELEVENLABS_VOICE_ID", "pNInz6obpgDQGcFmaJgB"),
        tts_model=os.getenv("ELEVENLABS_MODEL", "eleven_multilingual_v2"),
        media_dir=os.getenv("MEDIA_DIR", "tmp/media"),
        public_base_url=os.getenv("PUBLIC_BASE_URL") or None,
        media_retention_hours=_env_float("MEDIA_RETENTION_HOURS", 24.0),
        history_limit=_env_int("HISTORY_LIMIT", 10),
        http_timeout_seconds=_env_float("HTTP_TIMEOUT_SECONDS", 20.0),
        context_timeout_seconds=_env_float("CONTEXT_TIMEOUT_SECONDS", 10.0),
    )


def reset_settings_cache() -> None:
    """Clear cached settings; useful in tests when env vars change."""

    get_settings.cache_clear()


@dataclasses.dataclass(frozen=True)
class ReplySettings:
    """Per-business generation tuning with documented defaults.

    ``response_style`` defaults to ``"balanced"`` and unknown values are kept
    as-is so the prompt renderer can fall back to the balanced directive.
    ``enable_audio`` defaults to ``False``.
    """

    response_style: str = DEFAULT_RESPONSE_STYLE
    enable_audio: bool = False
    enable_buttons: bool = False
    fallback_message: str = DEFAULT_FALLBACK_MESSAGE
    transfer_keywords: tuple[str, ...] = ()
    voice_id: str | None = None

    @classmethod
    def from_record(cls, record: Mapping[str, Any] | None) -> "ReplySettings":
        """Resolve settings from a stored AI config row (or its absence)."""

        if not record:
            return cls()
        keywords = tuple(
            str(k).strip() for k in (record.get("transfer_keywords") or []) if str(k).strip()
        )
        return cls(
            response_style=(record.get("response_style") or DEFAULT_RESPONSE_STYLE).lower(),
            enable_audio=bool(record.get("enable_audio")),
            enable_buttons=bool(record.get("enable_buttons")),
            fallback_message=(record.get("fallback_message") or "").strip()
            or DEFAULT_FALLBACK_MESSAGE,
            transfer_keywords=keywords,
            voice_id=record.get("voice_id") or None,
        )

    @property
    def handoff_message(self) -> str:
        """Custom fallback text doubles as the handoff notice."""

        if self.fallback_message != DEFAULT_FALLBACK_MESSAGE:
            return self.fallback_message
        return DEFAULT_HANDOFF_MESSAGE

    def matches_transfer_keyword(self, text: str) -> str | None:
        """Return the first handoff keyword contained in ``text``."""

        lowered = (text or "").lower()
        for keyword in self.transfer_keywords:
            if keyword.lower() in lowered:
                return keyword
        return None


__all__ = [
    "DEFAULT_FALLBACK_MESSAGE",
    "DEFAULT_HANDOFF_MESSAGE",
    "DEFAULT_RESPONSE_STYLE",
    "RESPONSE_STYLES",
    "ReplySettings",
    "Settings",
    "get_settings",
    "reset_settings_cache",
]

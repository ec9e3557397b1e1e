"""Speech-to-text adapters for inbound voice notes."""

from __future__ import annotations

import logging
from typing import Any, Protocol

import openai
from openai import OpenAI

from ..errors import AdapterError, ConfigurationError
from .completion import map_openai_error
from .providers import ProviderCredentials, ProviderRegistry

logger = logging.getLogger(__name__)


class TranscriptionAdapter(Protocol):
    name: str

    def transcribe(self, audio: bytes, *, filename: str = "audio.ogg", mime_type: str | None = None) -> str: ...


class MockTranscriptionAdapter:
    """Adapter primarily intended for tests and offline development."""

    name = "mock"

    def __init__(self, transcript_text: str = "") -> None:
        self.transcript_text = transcript_text
        self.calls: list[bytes] = []

    def transcribe(self, audio: bytes, *, filename: str = "audio.ogg", mime_type: str | None = None) -> str:
        self.calls.append(audio)
        text = self.transcript_text.strip()
        if not text:
            raise AdapterError("Mock transcription produced no text", provider=self.name)
        return text


class WhisperTranscriptionAdapter:
    """Hosted Whisper transcription through the OpenAI audio API."""

    name = "whisper"

    def __init__(
        self,
        credentials: ProviderCredentials,
        *,
        model: str = "whisper-1",
        language: str | None = "pt",
        timeout: float = 20.0,
        client: Any | None = None,
    ) -> None:
        if not credentials.api_key and client is None:
            raise ConfigurationError("OPENAI_API_KEY is required for voice transcription")
        self.model = model
        self.language = language
        self._client = client or OpenAI(
            api_key=credentials.api_key,
            base_url=credentials.base_url,
            timeout=timeout,
            max_retries=0,
        )

    @classmethod
    def from_settings(cls, settings, registry: ProviderRegistry | None = None) -> "WhisperTranscriptionAdapter":
        registry = registry or ProviderRegistry()
        return cls(
            registry.get_credentials("openai"),
            model=settings.transcription_model,
            language=settings.transcription_language,
            timeout=settings.http_timeout_seconds,
        )

    def transcribe(self, audio: bytes, *, filename: str = "audio.ogg", mime_type: str | None = None) -> str:
        if not audio:
            raise AdapterError("Empty audio payload", provider=self.name)
        file_arg = (filename, audio, mime_type) if mime_type else (filename, audio)
        kwargs: dict[str, Any] = {"model": self.model, "file": file_arg}
        if self.language:
            kwargs["language"] = self.language
        try:
            result = self._client.audio.transcriptions.create(**kwargs)
        except openai.OpenAIError as exc:
            raise map_openai_error(exc, self.name) from exc

        text = (getattr(result, "text", None) or "").strip()
        if not text:
            raise AdapterError("Transcription returned no text", provider=self.name)
        logger.debug("Transcribed %d bytes into %d chars", len(audio), len(text))
        return text


__all__ = ["MockTranscriptionAdapter", "TranscriptionAdapter", "WhisperTranscriptionAdapter"]

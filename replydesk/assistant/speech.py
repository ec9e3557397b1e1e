"""Text-to-speech synthesis and public hosting of the generated audio."""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Any, Protocol
from uuid import uuid4

import requests

from ..errors import AdapterError, ConfigurationError, TransientAdapterError
from .providers import ProviderCredentials, ProviderRegistry

logger = logging.getLogger(__name__)


class SynthesisAdapter(Protocol):
    def synthesize(self, text: str, *, voice_id: str | None = None) -> bytes: ...


class ElevenLabsSynthesisAdapter:
    """Synthesize replies with the ElevenLabs text-to-speech API."""

    provider = "elevenlabs"

    def __init__(
        self,
        credentials: ProviderCredentials,
        *,
        voice_id: str,
        model_id: str = "eleven_multilingual_v2",
        timeout: float = 20.0,
        session: requests.Session | None = None,
    ) -> None:
        if not credentials.api_key:
            raise ConfigurationError("ELEVENLABS_API_KEY is required for speech synthesis")
        self.credentials = credentials
        self.voice_id = voice_id
        self.model_id = model_id
        self.timeout = timeout
        self._session = session or requests.Session()

    @classmethod
    def from_settings(cls, settings, registry: ProviderRegistry | None = None) -> "ElevenLabsSynthesisAdapter":
        registry = registry or ProviderRegistry()
        return cls(
            registry.get_credentials("elevenlabs"),
            voice_id=settings.voice_id,
            model_id=settings.tts_model,
            timeout=settings.http_timeout_seconds,
        )

    def synthesize(self, text: str, *, voice_id: str | None = None) -> bytes:
        url = f"{self.credentials.base_url}/text-to-speech/{voice_id or self.voice_id}"
        headers = {
            "Accept": "audio/mpeg",
            "Content-Type": "application/json",
            **self.credentials.as_headers(),
        }
        payload: dict[str, Any] = {
            "text": text,
            "model_id": self.model_id,
            "voice_settings": {"stability": 0.5, "similarity_boost": 0.5},
        }
        try:
            response = self._session.post(url, json=payload, headers=headers, timeout=self.timeout)
        except (requests.Timeout, requests.ConnectionError) as exc:
            raise TransientAdapterError(str(exc), provider=self.provider) from exc
        if response.status_code >= 400:
            error_cls = TransientAdapterError if response.status_code >= 500 else AdapterError
            raise error_cls(
                f"Speech synthesis failed: {response.text[:200]}",
                provider=self.provider,
                status_code=response.status_code,
            )
        if not response.content:
            raise AdapterError("Speech synthesis returned no audio", provider=self.provider)
        return response.content


class LocalAudioStore:
    """Write synthesized audio under ``media_dir`` and expose it by URL.

    Files are served by the ``/media`` static mount; without a public base URL
    the channel cannot fetch them, so :meth:`save` returns ``None``. Every
    save also deletes files older than ``retention_seconds`` (``0`` keeps
    everything).
    """

    def __init__(
        self,
        media_dir: str | Path,
        public_base_url: str | None,
        *,
        retention_seconds: float = 24 * 3600,
    ) -> None:
        self.media_dir = Path(media_dir)
        self.public_base_url = (public_base_url or "").rstrip("/") or None
        self.retention_seconds = retention_seconds

    def save(self, audio: bytes, *, suffix: str = ".mp3") -> str | None:
        if not self.public_base_url:
            logger.warning("PUBLIC_BASE_URL not set; synthesized audio will not be sent")
            return None
        self.media_dir.mkdir(parents=True, exist_ok=True)
        self.purge_expired()
        name = f"{uuid4().hex}{suffix}"
        (self.media_dir / name).write_bytes(audio)
        return f"{self.public_base_url}/media/{name}"

    def purge_expired(self, now: float | None = None) -> int:
        """Delete stored files older than the retention window."""

        if self.retention_seconds <= 0 or not self.media_dir.is_dir():
            return 0
        cutoff = (now if now is not None else time.time()) - self.retention_seconds
        removed = 0
        for path in self.media_dir.iterdir():
            try:
                if path.is_file() and path.stat().st_mtime < cutoff:
                    path.unlink()
                    removed += 1
            except OSError:
                # Already removed by a concurrent sweep.
                continue
        if removed:
            logger.info("Removed %d expired audio file(s) from %s", removed, self.media_dir)
        return removed


__all__ = ["ElevenLabsSynthesisAdapter", "LocalAudioStore", "SynthesisAdapter"]

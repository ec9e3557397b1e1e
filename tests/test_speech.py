import os
import time
from typing import Any, Dict, List

import pytest
import requests

from replydesk.assistant.providers import ProviderCredentials
from replydesk.assistant.speech import ElevenLabsSynthesisAdapter, LocalAudioStore
from replydesk.errors import AdapterError, ConfigurationError, TransientAdapterError

_CREDENTIALS = ProviderCredentials(
    provider="elevenlabs", api_key="xi-test", base_url="https://api.elevenlabs.io/v1"
)


class _FakeResponse:
    def __init__(self, status_code: int = 200, content: bytes = b"ID3", text: str = ""):
        self.status_code = status_code
        self.content = content
        self.text = text


class _FakeSession:
    def __init__(self, response: Any):
        self._response = response
        self.requests: List[Dict[str, Any]] = []

    def post(self, url: str, **kwargs: Any) -> _FakeResponse:
        self.requests.append({"url": url, **kwargs})
        if isinstance(self._response, Exception):
            raise self._response
        return self._response


def _adapter(response: Any) -> tuple[ElevenLabsSynthesisAdapter, _FakeSession]:
    session = _FakeSession(response)
    adapter = ElevenLabsSynthesisAdapter(
        _CREDENTIALS, voice_id="default-voice", timeout=5.0, session=session
    )
    return adapter, session


def test_synthesize_posts_text_with_voice_override():
    adapter, session = _adapter(_FakeResponse(content=b"ID3-mp3"))

    audio = adapter.synthesize("Olá, tudo bem?", voice_id="voice-123")

    assert audio == b"ID3-mp3"
    [request] = session.requests
    assert request["url"] == "https://api.elevenlabs.io/v1/text-to-speech/voice-123"
    assert request["headers"]["xi-api-key"] == "xi-test"
    assert request["headers"]["Accept"] == "audio/mpeg"
    assert request["json"]["text"] == "Olá, tudo bem?"
    assert request["json"]["model_id"] == "eleven_multilingual_v2"
    assert request["timeout"] == 5.0


def test_default_voice_is_used_without_override():
    adapter, session = _adapter(_FakeResponse())

    adapter.synthesize("oi")

    assert session.requests[0]["url"].endswith("/text-to-speech/default-voice")


@pytest.mark.parametrize(
    "response,error_cls",
    [
        (_FakeResponse(status_code=401, text="invalid key"), AdapterError),
        (_FakeResponse(status_code=502), TransientAdapterError),
        (requests.Timeout("slow"), TransientAdapterError),
        (_FakeResponse(content=b""), AdapterError),
    ],
)
def test_failures_raise_adapter_errors(response, error_cls):
    adapter, _ = _adapter(response)

    with pytest.raises(error_cls):
        adapter.synthesize("oi")


def test_client_error_is_not_transient():
    adapter, _ = _adapter(_FakeResponse(status_code=400))

    with pytest.raises(AdapterError) as excinfo:
        adapter.synthesize("oi")
    assert not isinstance(excinfo.value, TransientAdapterError)
    assert excinfo.value.status_code == 400


def test_missing_key_is_a_configuration_error():
    with pytest.raises(ConfigurationError):
        ElevenLabsSynthesisAdapter(ProviderCredentials(provider="elevenlabs", api_key=None), voice_id="v")


def test_audio_store_writes_file_and_returns_public_url(tmp_path):
    store = LocalAudioStore(tmp_path / "media", "https://bot.example/")

    url = store.save(b"ID3-mp3")

    assert url.startswith("https://bot.example/media/")
    assert url.endswith(".mp3")
    name = url.rsplit("/", 1)[1]
    assert (tmp_path / "media" / name).read_bytes() == b"ID3-mp3"


def test_audio_store_without_public_url_returns_none(tmp_path):
    store = LocalAudioStore(tmp_path / "media", None)

    assert store.save(b"ID3-mp3") is None
    assert not (tmp_path / "media").exists()


def test_save_purges_files_past_retention(tmp_path):
    media = tmp_path / "media"
    media.mkdir()
    stale = media / "old.mp3"
    fresh = media / "recent.mp3"
    stale.write_bytes(b"old")
    fresh.write_bytes(b"new")
    two_days_ago = time.time() - 2 * 24 * 3600
    os.utime(stale, (two_days_ago, two_days_ago))
    store = LocalAudioStore(media, "https://bot.example", retention_seconds=24 * 3600)

    url = store.save(b"ID3-mp3")

    assert not stale.exists()
    assert fresh.exists()
    assert (media / url.rsplit("/", 1)[1]).exists()


def test_zero_retention_keeps_everything(tmp_path):
    media = tmp_path / "media"
    media.mkdir()
    (media / "old.mp3").write_bytes(b"old")
    store = LocalAudioStore(media, "https://bot.example", retention_seconds=0)

    assert store.purge_expired(now=time.time() + 10 * 24 * 3600) == 0
    assert (media / "old.mp3").exists()

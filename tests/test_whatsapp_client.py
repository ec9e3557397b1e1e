from typing import Any, Dict, List

import pytest
import requests

from replydesk.channels.whatsapp import WhatsAppClient
from replydesk.errors import (
    AdapterError,
    ConfigurationError,
    DispatchError,
    TransientAdapterError,
)


class _FakeResponse:
    def __init__(self, payload: Any = None, status_code: int = 200, content: bytes = b""):
        self._payload = payload
        self.status_code = status_code
        self.content = content

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class _FakeSession:
    def __init__(self, responses: List[Any]):
        self._responses = responses
        self.requests: List[Dict[str, Any]] = []

    def request(self, method: str, url: str, **kwargs: Any) -> _FakeResponse:
        self.requests.append({"method": method, "url": url, **kwargs})
        if not self._responses:
            raise AssertionError("no more responses queued")
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def _client(*responses: Any) -> tuple[WhatsAppClient, _FakeSession]:
    session = _FakeSession(list(responses))
    client = WhatsAppClient(
        "EAAG-token",
        "1029384756",
        base_url="https://graph.example/v17.0/",
        timeout=3.0,
        session=session,
    )
    return client, session


def test_send_text_posts_to_phone_number_endpoint():
    client, session = _client(_FakeResponse({"messages": [{"id": "wamid.out"}]}))

    result = client.send_text("5511999990000", "Olá!")

    assert result == {"messages": [{"id": "wamid.out"}]}
    [request] = session.requests
    assert request["method"] == "POST"
    assert request["url"] == "https://graph.example/v17.0/1029384756/messages"
    assert request["headers"] == {"Authorization": "Bearer EAAG-token"}
    assert request["timeout"] == 3.0
    assert request["json"]["text"]["body"] == "Olá!"


def test_send_audio_uses_link_payload():
    client, session = _client(_FakeResponse(None))

    assert client.send_audio("5511999990000", "https://bot.example/media/x.mp3") == {}
    assert session.requests[0]["json"]["type"] == "audio"


@pytest.mark.parametrize("status_code", [400, 401, 500])
def test_rejected_send_raises_dispatch_error(status_code):
    client, _ = _client(_FakeResponse({"error": {}}, status_code=status_code))

    with pytest.raises(DispatchError) as excinfo:
        client.send_text("5511999990000", "Olá!")

    assert excinfo.value.status_code == status_code
    assert excinfo.value.provider == "whatsapp"


def test_timeout_raises_transient_error():
    client, _ = _client(requests.Timeout("read timed out"))

    with pytest.raises(TransientAdapterError):
        client.send_text("5511999990000", "Olá!")


def test_connection_error_raises_transient_error():
    client, _ = _client(requests.ConnectionError("reset"))

    with pytest.raises(TransientAdapterError):
        client.get_media_url("media-1")


def test_media_lookup_and_download():
    client, session = _client(
        _FakeResponse({"url": "https://lookaside.example/media-1"}),
        _FakeResponse(content=b"OggS"),
    )

    url = client.get_media_url("media-1")
    audio = client.download_media(url)

    assert url == "https://lookaside.example/media-1"
    assert audio == b"OggS"
    assert [r["url"] for r in session.requests] == [
        "https://graph.example/v17.0/media-1",
        "https://lookaside.example/media-1",
    ]


def test_media_lookup_errors():
    client, _ = _client(
        _FakeResponse({}, status_code=404),
        _FakeResponse({}, status_code=503),
        _FakeResponse({"id": "media-1"}),
    )

    with pytest.raises(AdapterError) as not_found:
        client.get_media_url("media-1")
    assert not isinstance(not_found.value, TransientAdapterError)
    with pytest.raises(TransientAdapterError):
        client.get_media_url("media-1")
    with pytest.raises(AdapterError, match="no url"):
        client.get_media_url("media-1")


@pytest.mark.parametrize("token,phone_id", [(None, "1029384756"), ("EAAG-token", ""), ("", None)])
def test_missing_credentials_raise_configuration_error(token, phone_id):
    with pytest.raises(ConfigurationError):
        WhatsAppClient(token, phone_id, session=_FakeSession([]))


@pytest.mark.parametrize(
    "response",
    [
        _FakeResponse(None, content=b"<html>login</html>"),
        _FakeResponse(["https://lookaside.example/media-1"]),
        _FakeResponse({"url": 42}),
    ],
)
def test_unusable_media_lookup_body_is_an_adapter_error(response):
    client, _ = _client(response)

    with pytest.raises(AdapterError):
        client.get_media_url("media-1")


def test_other_request_failures_raise_adapter_error():
    client, _ = _client(requests.TooManyRedirects("loop"))

    with pytest.raises(AdapterError) as excinfo:
        client.download_media("https://lookaside.example/media-1")
    assert not isinstance(excinfo.value, TransientAdapterError)

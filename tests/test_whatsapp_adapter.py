import hashlib
import hmac
import json
from datetime import datetime, timezone

import pytest

from replydesk.channels.whatsapp import WhatsAppAdapter
from replydesk.conversations.models import (
    AudioContent,
    MediaContent,
    TextContent,
    UnsupportedContent,
)

from conftest import CONTACT, PHONE_ID, WhatsAppPayloads


@pytest.fixture
def adapter():
    return WhatsAppAdapter()


def test_parse_text_message(adapter):
    payload = WhatsAppPayloads.delivery(WhatsAppPayloads.text("wamid.1", "Oi, tudo bem?"))

    [message] = list(adapter.parse_incoming(payload))

    assert message.provider_message_id == "wamid.1"
    assert message.sender_id == CONTACT
    assert message.business_phone_id == PHONE_ID
    assert message.sender_name == "Maria"
    assert message.content == TextContent(body="Oi, tudo bem?")
    assert message.message_type == "text"
    assert message.sent_at == datetime.fromtimestamp(1760788800, tz=timezone.utc)
    assert message.metadata["entry_id"] == "WABA-1"


def test_parse_audio_and_image(adapter):
    payload = WhatsAppPayloads.delivery(
        WhatsAppPayloads.audio("wamid.a", "media-9"),
        WhatsAppPayloads.image("wamid.i"),
    )

    audio, image = list(adapter.parse_incoming(payload))

    assert audio.content == AudioContent(media_id="media-9", mime_type="audio/ogg; codecs=opus")
    assert isinstance(image.content, MediaContent)
    assert image.content.caption == "olha essa"
    assert image.message_type == "image"


def test_unsupported_types_are_stored_as_documents(adapter):
    sticker = {"from": CONTACT, "id": "wamid.s", "type": "sticker", "sticker": {"id": "st-1"}}
    payload = WhatsAppPayloads.delivery(sticker)

    [message] = list(adapter.parse_incoming(payload))

    assert message.content == UnsupportedContent(kind="sticker")
    assert message.message_type == "document"


def test_audio_without_media_id_is_unsupported(adapter):
    broken = {"from": CONTACT, "id": "wamid.b", "type": "audio", "audio": {}}

    [message] = list(adapter.parse_incoming(WhatsAppPayloads.delivery(broken)))

    assert message.content == UnsupportedContent(kind="audio")


@pytest.mark.parametrize(
    "payload",
    [
        {},
        {"object": "whatsapp_business_account"},
        {"entry": "nope"},
        {"entry": [{"changes": [{"value": {"statuses": [{"id": "wamid.1", "status": "read"}]}}]}]},
        {"entry": [None, {"changes": [None, {"value": "broken"}]}]},
        {"entry": [{"changes": "nope"}]},
        {"entry": [{"changes": [{"value": {"metadata": "oops", "messages": 7}}]}]},
        {"entry": [{"changes": [{"value": {"messages": [{"from": ["x"], "id": "wamid.1"}]}}]}]},
        ["not", "a", "mapping"],
    ],
)
def test_unrecognized_shapes_yield_nothing(adapter, payload):
    assert list(adapter.parse_incoming(payload)) == []


def test_message_without_sender_is_skipped(adapter):
    payload = WhatsAppPayloads.delivery(WhatsAppPayloads.text("wamid.1", "oi"))
    payload["entry"][0]["changes"][0]["value"]["messages"][0]["from"] = ""

    assert list(adapter.parse_incoming(payload)) == []


def test_invalid_timestamp_defaults_to_now(adapter):
    message = WhatsAppPayloads.text("wamid.1", "oi")
    message["timestamp"] = "ontem"

    [parsed] = list(adapter.parse_incoming(WhatsAppPayloads.delivery(message)))

    assert parsed.sent_at.tzinfo is not None


def test_verify_signature(adapter):
    body = json.dumps({"entry": []}).encode()
    digest = hmac.new(b"app-secret", body, hashlib.sha256).hexdigest()

    assert adapter.verify_signature(body, {"X-Hub-Signature-256": f"sha256={digest}"}, "app-secret")
    assert not adapter.verify_signature(body, {"X-Hub-Signature-256": "sha256=deadbeef"}, "app-secret")
    assert not adapter.verify_signature(body, {}, "app-secret")
    assert adapter.verify_signature(body, {}, None)


def test_outbound_payloads(adapter):
    assert adapter.build_text_payload(CONTACT, "Olá") == {
        "messaging_product": "whatsapp",
        "recipient_type": "individual",
        "to": CONTACT,
        "type": "text",
        "text": {"preview_url": False, "body": "Olá"},
    }
    assert adapter.build_audio_payload(CONTACT, "https://bot.example/media/a.mp3")["audio"] == {
        "link": "https://bot.example/media/a.mp3"
    }


def test_registry_resolves_whatsapp_case_insensitively():
    from replydesk.channels import get_adapter

    assert get_adapter("WhatsApp") is WhatsAppAdapter
    with pytest.raises(KeyError):
        get_adapter("telegram")


def test_malformed_change_does_not_hide_valid_sibling(adapter):
    payload = WhatsAppPayloads.delivery(WhatsAppPayloads.text("wamid.ok", "Oi"))
    payload["entry"][0]["changes"].insert(0, {"value": {"metadata": "oops", "messages": []}})
    payload["entry"].insert(0, {"id": "WABA-0", "changes": [{"value": {"metadata": 42, "contacts": "x"}}]})

    [message] = list(adapter.parse_incoming(payload))

    assert message.provider_message_id == "wamid.ok"
    assert message.business_phone_id == PHONE_ID


@pytest.mark.parametrize(
    "contacts",
    [
        [{"wa_id": CONTACT, "profile": "Maria"}],
        [{"wa_id": CONTACT, "profile": {"name": 123}}],
        [{"wa_id": ["not", "hashable"], "profile": {"name": "Maria"}}],
        ["Maria"],
        "Maria",
    ],
)
def test_malformed_contacts_leave_name_empty(adapter, contacts):
    payload = WhatsAppPayloads.delivery(WhatsAppPayloads.text("wamid.1", "Oi"))
    payload["entry"][0]["changes"][0]["value"]["contacts"] = contacts

    [message] = list(adapter.parse_incoming(payload))

    assert message.sender_name is None
    assert message.content == TextContent(body="Oi")


def test_metadata_that_is_not_an_object_leaves_phone_id_empty(adapter):
    payload = WhatsAppPayloads.delivery(WhatsAppPayloads.text("wamid.1", "Oi"))
    payload["entry"][0]["changes"][0]["value"]["metadata"] = "oops"

    [message] = list(adapter.parse_incoming(payload))

    assert message.business_phone_id == ""
    assert message.metadata["display_phone_number"] is None

"""WhatsApp Cloud API channel adapter and HTTP client."""

from __future__ import annotations

import hashlib
import hmac
import logging
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from typing import Any

import requests

from ..conversations.models import (
    AudioContent,
    InboundMessage,
    MediaContent,
    MessageContent,
    TextContent,
    UnsupportedContent,
)
from ..errors import AdapterError, ConfigurationError, DispatchError, TransientAdapterError
from .base import ChannelAdapter

logger = logging.getLogger(__name__)


def _mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _items(value: Any) -> list[Mapping[str, Any]]:
    """Return the mapping elements of a JSON array; anything else is empty."""

    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, Mapping)]


def _parse_timestamp(raw: Any) -> datetime:
    if raw:
        try:
            return datetime.fromtimestamp(int(raw), tz=timezone.utc)
        except (ValueError, TypeError, OverflowError, OSError):
            pass
    return datetime.now(timezone.utc)


def _parse_content(message: Mapping[str, Any]) -> MessageContent:
    message_type = str(message.get("type") or "unknown")
    payload = message.get(message_type)
    if not isinstance(payload, Mapping):
        payload = {}
    if message_type == "text":
        body = payload.get("body")
        if isinstance(body, str):
            return TextContent(body=body)
        return UnsupportedContent(kind="text")
    if message_type == "audio":
        media_id = payload.get("id")
        if media_id:
            return AudioContent(media_id=str(media_id), mime_type=payload.get("mime_type"))
        return UnsupportedContent(kind="audio")
    if message_type in {"image", "document"}:
        return MediaContent(
            kind=message_type,
            media_id=payload.get("id"),
            caption=payload.get("caption"),
            mime_type=payload.get("mime_type"),
        )
    return UnsupportedContent(kind=message_type)


class WhatsAppAdapter(ChannelAdapter):
    channel_name = "whatsapp"

    def verify_signature(
        self,
        body: bytes,
        headers: Mapping[str, str],
        secret: str | None,
    ) -> bool:
        if not secret:
            return True
        received = headers.get("X-Hub-Signature-256")
        if not received:
            return False
        digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
        expected = f"sha256={digest}"
        return hmac.compare_digest(received, expected)

    def parse_incoming(self, payload: Mapping[str, Any]) -> Iterable[InboundMessage]:
        if not isinstance(payload, Mapping):
            return
        for entry in _items(payload.get("entry")):
            for change in _items(entry.get("changes")):
                value = change.get("value")
                if not isinstance(value, Mapping):
                    continue
                metadata = _mapping(value.get("metadata"))
                phone_id = str(metadata.get("phone_number_id") or "")
                contacts = {
                    c["wa_id"]: c
                    for c in _items(value.get("contacts"))
                    if isinstance(c.get("wa_id"), str)
                }
                for message in _items(value.get("messages")):
                    sender_id = message.get("from")
                    if not sender_id or not isinstance(sender_id, (str, int)):
                        continue
                    sender_id = str(sender_id)
                    profile = _mapping(contacts.get(sender_id, {}).get("profile"))
                    name = profile.get("name")
                    yield InboundMessage(
                        provider_message_id=str(message.get("id") or ""),
                        sender_id=sender_id,
                        business_phone_id=phone_id,
                        content=_parse_content(message),
                        sender_name=name if isinstance(name, str) else None,
                        metadata={
                            "display_phone_number": metadata.get("display_phone_number"),
                            "entry_id": entry.get("id"),
                        },
                        sent_at=_parse_timestamp(message.get("timestamp")),
                    )

    def build_text_payload(self, to: str, body: str) -> dict[str, Any]:
        return {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": to,
            "type": "text",
            "text": {"preview_url": False, "body": body},
        }

    def build_audio_payload(self, to: str, link: str) -> dict[str, Any]:
        return {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": to,
            "type": "audio",
            "audio": {"link": link},
        }


class WhatsAppClient:
    """Thin Graph API client bound to one business's credentials.

    Every call carries a bounded timeout. Timeouts and connection errors
    surface as :class:`TransientAdapterError`; rejected sends as
    :class:`DispatchError`.
    """

    def __init__(
        self,
        access_token: str | None,
        phone_number_id: str | None,
        *,
        base_url: str = "https://graph.facebook.com/v17.0",
        timeout: float = 20.0,
        adapter: WhatsAppAdapter | None = None,
        session: requests.Session | None = None,
    ) -> None:
        if not access_token:
            raise ConfigurationError("WhatsApp access token is not configured")
        if not phone_number_id:
            raise ConfigurationError("WhatsApp phone number id is not configured")
        self.access_token = access_token
        self.phone_number_id = phone_number_id
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.adapter = adapter or WhatsAppAdapter()
        self._session = session or requests.Session()

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.access_token}"}

    def _request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        try:
            return self._session.request(
                method, url, headers=self._headers(), timeout=self.timeout, **kwargs
            )
        except requests.Timeout as exc:
            raise TransientAdapterError(f"WhatsApp request timed out: {url}", provider="whatsapp") from exc
        except requests.ConnectionError as exc:
            raise TransientAdapterError(f"WhatsApp connection failed: {exc}", provider="whatsapp") from exc
        except requests.RequestException as exc:
            raise AdapterError(f"WhatsApp request failed: {exc}", provider="whatsapp") from exc

    # Media ----------------------------------------------------------------------
    def get_media_url(self, media_id: str) -> str:
        response = self._request("GET", f"{self.base_url}/{media_id}")
        if response.status_code >= 400:
            error_cls = TransientAdapterError if response.status_code >= 500 else AdapterError
            raise error_cls(
                f"Media lookup failed for {media_id}",
                provider="whatsapp",
                status_code=response.status_code,
            )
        try:
            body = response.json()
        except ValueError as exc:
            raise AdapterError(
                f"Media lookup for {media_id} returned invalid JSON", provider="whatsapp"
            ) from exc
        url = body.get("url") if isinstance(body, Mapping) else None
        if not url or not isinstance(url, str):
            raise AdapterError(f"Media lookup for {media_id} returned no url", provider="whatsapp")
        return url

    def download_media(self, url: str) -> bytes:
        response = self._request("GET", url)
        if response.status_code >= 400:
            error_cls = TransientAdapterError if response.status_code >= 500 else AdapterError
            raise error_cls(
                "Media download failed", provider="whatsapp", status_code=response.status_code
            )
        return response.content

    # Messages -------------------------------------------------------------------
    def _send(self, payload: dict[str, Any]) -> dict[str, Any]:
        response = self._request(
            "POST", f"{self.base_url}/{self.phone_number_id}/messages", json=payload
        )
        if not 200 <= response.status_code < 300:
            raise DispatchError(
                f"WhatsApp send returned HTTP {response.status_code}",
                provider="whatsapp",
                status_code=response.status_code,
            )
        try:
            return response.json() or {}
        except ValueError:
            return {}

    def send_text(self, to: str, body: str) -> dict[str, Any]:
        return self._send(self.adapter.build_text_payload(to, body))

    def send_audio(self, to: str, link: str) -> dict[str, Any]:
        return self._send(self.adapter.build_audio_payload(to, link))


__all__ = ["WhatsAppAdapter", "WhatsAppClient"]

"""Base abstractions for chat channel adapters."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from typing import Any

from ..conversations.models import InboundMessage


class ChannelAdapter(ABC):
    """Abstract base class encapsulating channel-specific payload handling."""

    #: Lowercase channel identifier used in routes and configuration.
    channel_name: str

    @abstractmethod
    def parse_incoming(self, payload: Mapping[str, Any]) -> Iterable[InboundMessage]:
        """Convert a webhook payload into inbound messages.

        Payloads that do not match the expected shape yield nothing.
        """

    def verify_signature(
        self,
        body: bytes,
        headers: Mapping[str, str],
        secret: str | None,
    ) -> bool:
        """Validate authenticity of the webhook payload.

        Adapters can override this to implement signature checks. The default
        implementation returns ``True``.
        """

        return True

    @abstractmethod
    def build_text_payload(self, to: str, body: str) -> dict[str, Any]:
        """Prepare an outbound text message for the channel API."""

    @abstractmethod
    def build_audio_payload(self, to: str, link: str) -> dict[str, Any]:
        """Prepare an outbound audio message for the channel API."""

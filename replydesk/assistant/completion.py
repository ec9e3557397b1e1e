"""Chat completion backend adapters."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any, Protocol

import openai
from openai import OpenAI

from ..errors import AdapterError, ConfigurationError, TransientAdapterError
from .context import ChatTurn
from .providers import ProviderCredentials, ProviderRegistry
from .responses import ResponseParameterStore

logger = logging.getLogger(__name__)


class CompletionAdapter(Protocol):
    """Anything that turns ordered chat turns into reply text."""

    def complete(self, turns: Sequence[ChatTurn], **parameters: Any) -> str: ...


def map_openai_error(exc: Exception, provider: str) -> AdapterError:
    """Translate SDK exceptions into the shared adapter error hierarchy."""

    if isinstance(exc, (openai.APITimeoutError, openai.APIConnectionError)):
        return TransientAdapterError(str(exc), provider=provider)
    if isinstance(exc, openai.APIStatusError):
        status = exc.status_code
        error_cls = TransientAdapterError if status >= 500 or status == 429 else AdapterError
        return error_cls(str(exc), provider=provider, status_code=status)
    return AdapterError(str(exc), provider=provider)


class ChatCompletionAdapter:
    """OpenAI-compatible chat completion client (DeepSeek by default)."""

    def __init__(
        self,
        credentials: ProviderCredentials,
        *,
        model: str,
        timeout: float = 20.0,
        parameters: dict[str, Any] | None = None,
        responses: ResponseParameterStore | None = None,
        client: Any | None = None,
    ) -> None:
        if not credentials.api_key and client is None:
            raise ConfigurationError(f"No API key configured for provider '{credentials.provider}'")
        self.provider = credentials.provider
        self.model = model
        self._responses = responses or ResponseParameterStore()
        self._parameters = parameters or {}
        self._client = client or OpenAI(
            api_key=credentials.api_key,
            base_url=credentials.base_url,
            timeout=timeout,
            max_retries=0,
        )

    @classmethod
    def from_settings(cls, settings, registry: ProviderRegistry | None = None) -> "ChatCompletionAdapter":
        registry = registry or ProviderRegistry()
        return cls(
            registry.get_credentials(settings.completion_provider),
            model=settings.completion_model,
            timeout=settings.http_timeout_seconds,
            parameters={
                "max_tokens": settings.completion_max_tokens,
                "temperature": settings.completion_temperature,
            },
        )

    def complete(self, turns: Sequence[ChatTurn], **parameters: Any) -> str:
        params = self._responses.merge(self.provider, self._parameters, parameters)
        try:
            completion = self._client.chat.completions.create(
                model=self.model,
                messages=[turn.as_dict() for turn in turns],
                **params,
            )
        except openai.OpenAIError as exc:
            raise map_openai_error(exc, self.provider) from exc

        try:
            content = completion.choices[0].message.content
        except (AttributeError, IndexError, TypeError) as exc:
            raise AdapterError("Malformed completion response", provider=self.provider) from exc
        text = (content or "").strip()
        if not text:
            raise AdapterError("Completion returned no text", provider=self.provider)
        return text


__all__ = ["ChatCompletionAdapter", "CompletionAdapter", "map_openai_error"]

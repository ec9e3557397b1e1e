"""Exception hierarchy shared by adapters and the webhook pipeline."""

from __future__ import annotations


class ReplyDeskError(RuntimeError):
    """Base class for errors raised by ReplyDesk components."""


class ConfigurationError(ReplyDeskError):
    """Raised when credentials or keys required by an adapter are missing."""


class AdapterError(ReplyDeskError):
    """Raised when a third-party backend call fails or returns garbage."""

    def __init__(self, message: str, *, provider: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


class TransientAdapterError(AdapterError):
    """Timeouts, connection failures and 5xx responses.

    These are not retried by the pipeline; the provider's webhook redelivery
    is the retry mechanism.
    """


class DispatchError(AdapterError):
    """Raised when the channel provider rejects an outbound message."""


class BusinessNotFoundError(ReplyDeskError):
    """Raised when no business profile matches an identifier."""


class ConversationNotFoundError(ReplyDeskError):
    """Raised when a conversation id does not belong to the business."""


class ContextUnavailableError(ReplyDeskError):
    """Raised when grounding records could not be loaded in time."""


__all__ = [
    "AdapterError",
    "BusinessNotFoundError",
    "ConfigurationError",
    "ContextUnavailableError",
    "ConversationNotFoundError",
    "DispatchError",
    "ReplyDeskError",
    "TransientAdapterError",
]

"""Response parameter defaults for completion calls."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any


class ResponseParameterStore:
    """Maintain provider specific response parameter defaults.

    ``max_tokens`` is always present so channel replies stay deliverable.
    """

    _DEFAULTS: Mapping[str, dict[str, Any]] = {
        "deepseek": {"temperature": 0.7, "max_tokens": 800, "top_p": 0.9},
        "openai": {"temperature": 0.7, "max_tokens": 800},
    }

    _FALLBACK: Mapping[str, Any] = {"temperature": 0.5, "max_tokens": 500}

    def __init__(self, overrides: Mapping[str, Mapping[str, Any]] | None = None):
        self._defaults: dict[str, dict[str, Any]] = {
            provider: dict(params) for provider, params in self._DEFAULTS.items()
        }
        if overrides:
            for provider, params in overrides.items():
                merged = self._defaults.setdefault(provider.lower(), {})
                merged.update(params)

    def defaults_for_provider(self, provider: str) -> dict[str, Any]:
        """Return defaults for ``provider``."""

        return dict(self._defaults.get(provider.lower(), self._FALLBACK))

    def merge(self, provider: str, *overrides: dict[str, Any] | None) -> dict[str, Any]:
        """Merge multiple overrides on top of provider defaults."""

        params = self.defaults_for_provider(provider)
        for override in overrides:
            if override:
                params.update({k: v for k, v in override.items() if v is not None})
        params.setdefault("max_tokens", self._FALLBACK["max_tokens"])
        return params

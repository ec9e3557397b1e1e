"""Provider credential helpers for the generation, speech and STT backends."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field


@dataclass(frozen=True)
class ProviderCredentials:
    """Container for credentials resolved for a provider."""

    provider: str
    api_key: str | None
    base_url: str | None = None
    extras: dict[str, str] = field(default_factory=dict)

    def as_headers(self) -> dict[str, str]:
        """Return HTTP headers suitable for calling the provider API."""

        headers: dict[str, str] = {}
        if self.api_key:
            if self.provider == "elevenlabs":
                headers["xi-api-key"] = self.api_key
            else:
                headers["Authorization"] = f"Bearer {self.api_key}"
        for key, value in self.extras.items():
            headers[key] = value
        return headers


class ProviderRegistry:
    """Resolve provider credentials from environment or explicit overrides."""

    _DEFAULT_ENV_MAP: Mapping[str, str] = {
        "openai": "OPENAI_API_KEY",
        "deepseek": "DEEPSEEK_API_KEY",
        "elevenlabs": "ELEVENLABS_API_KEY",
    }

    _DEFAULT_BASE_URLS: Mapping[str, str] = {
        "openai": "https://api.openai.com/v1",
        "deepseek": "https://api.deepseek.com/v1",
        "elevenlabs": "https://api.elevenlabs.io/v1",
    }

    def __init__(self, overrides: Mapping[str, Mapping[str, str]] | None = None):
        self._overrides = {
            (k.lower() if isinstance(k, str) else k): dict(v)
            for k, v in (overrides or {}).items()
        }

    def get_credentials(self, provider: str) -> ProviderCredentials:
        """Return credentials for ``provider``.

        The lookup order prefers explicit overrides (e.g. injected during
        testing) and falls back to environment variables using
        ``_DEFAULT_ENV_MAP``. ``<PROVIDER>_BASE_URL`` overrides the endpoint.
        """

        key = provider.lower()
        default_base = os.getenv(f"{key.upper()}_BASE_URL") or self._DEFAULT_BASE_URLS.get(key)
        if key in self._overrides:
            override = self._overrides[key]
            return ProviderCredentials(
                provider=key,
                api_key=override.get("api_key"),
                base_url=override.get("base_url") or default_base,
                extras={
                    k: v for k, v in override.items() if k not in {"api_key", "base_url"}
                },
            )
        env_var = self._DEFAULT_ENV_MAP.get(key)
        api_key = os.getenv(env_var) if env_var else None
        return ProviderCredentials(provider=key, api_key=api_key or None, base_url=default_base)

    def list_supported_providers(self) -> dict[str, bool]:
        """Return a mapping of supported providers to whether a key is set."""

        providers = set(self._DEFAULT_ENV_MAP.keys()) | set(self._overrides.keys())
        return {name: bool(self.get_credentials(name).api_key) for name in sorted(providers)}

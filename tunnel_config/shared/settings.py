"""Runtime settings for the tunnel config normalizer."""

from __future__ import annotations

import os
from dataclasses import dataclass

SUPPORTED_CIPHERS = (
    "chacha20-ietf-poly1305",
    "aes-256-gcm",
    "aes-192-gcm",
    "aes-128-gcm",
)


def _parse_ciphers(raw: str) -> tuple[str, ...]:
    requested = {part.strip().lower() for part in raw.split(",") if part.strip()}
    allowed = tuple(cipher for cipher in SUPPORTED_CIPHERS if cipher in requested)
    return allowed or SUPPORTED_CIPHERS


@dataclass(frozen=True)
class NormalizerSettings:
    """Logging, cipher policy and fetch limits."""

    log_level: str = "WARNING"
    allowed_ciphers: tuple[str, ...] = SUPPORTED_CIPHERS
    fetch_timeout: float = 10.0

    @classmethod
    def from_env(cls, env: dict[str, str] | None = None) -> "NormalizerSettings":
        source = env if env is not None else os.environ
        log_level = str(source.get("TUNNEL_CONFIG_LOG_LEVEL", "WARNING")).strip().upper()
        allowed_ciphers = _parse_ciphers(str(source.get("TUNNEL_CONFIG_ALLOWED_CIPHERS", "")))
        try:
            fetch_timeout = float(source.get("TUNNEL_CONFIG_FETCH_TIMEOUT", "10"))
        except ValueError:
            fetch_timeout = 10.0
        return cls(
            log_level=log_level or "WARNING",
            allowed_ciphers=allowed_ciphers,
            fetch_timeout=fetch_timeout if fetch_timeout > 0 else 10.0,
        )


def get_settings(env: dict[str, str] | None = None) -> NormalizerSettings:
    """Build settings from environment variables."""

    return NormalizerSettings.from_env(env)

"""Transport builder selection."""

from __future__ import annotations

from tunnel_config.shared.settings import NormalizerSettings, get_settings
from tunnel_config.transport.shadowsocks import ShadowsocksTransportBuilder


def default_transport_builder(
    settings: NormalizerSettings | None = None,
) -> ShadowsocksTransportBuilder:
    resolved = settings or get_settings()
    return ShadowsocksTransportBuilder(allowed_ciphers=resolved.allowed_ciphers)

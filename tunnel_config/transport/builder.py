"""Contract for the subsystem that turns transport config text into a client."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class ConnectionProviderInfo:
    first_hop: str


@dataclass(frozen=True)
class TransportClient:
    transport_config: str
    stream_dialer: ConnectionProviderInfo
    packet_listener: ConnectionProviderInfo


class TransportBuilder(Protocol):
    name: str

    def build(self, transport_config: str) -> TransportClient:
        """Validate `transport_config` and return the client; raise PlatformError on failure."""
        ...

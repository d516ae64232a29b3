"""Shadowsocks transport builder: validates configs and reports their first hops.

Accepted forms:
- ss:// links, SIP002 and the legacy fully base64-encoded form
- legacy flat JSON (server, server_port, method, password, prefix)
- YAML `$type: shadowsocks` configs (endpoint, cipher, secret, prefix)
- YAML `$type: tcpudp` configs with separate `tcp` and `udp` sub-configs

No connection is opened; the builder only validates and resolves endpoints.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
from dataclasses import dataclass
from typing import Any
from urllib.parse import unquote

import yaml

from tunnel_config.dialect import safe_load
from tunnel_config.errors import ErrorCode, PlatformError
from tunnel_config.shared.settings import SUPPORTED_CIPHERS
from tunnel_config.transport.builder import ConnectionProviderInfo, TransportClient

logger = logging.getLogger(__name__)

SS_URL_PREFIX = "ss://"
_LOCATION_END_RE = re.compile(r"[/?]")


def _invalid(message: str) -> PlatformError:
    return PlatformError(ErrorCode.INVALID_CONFIG, message)


@dataclass(frozen=True)
class ShadowsocksConfig:
    host: str
    port: int
    cipher: str
    secret: str
    prefix: str = ""

    @property
    def first_hop(self) -> str:
        return format_host_port(self.host, self.port)


def format_host_port(host: str, port: int) -> str:
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


def parse_port(value: Any) -> int:
    if isinstance(value, bool):
        raise _invalid(f"invalid port: {value!r}")
    if isinstance(value, int):
        port = value
    elif isinstance(value, str) and value.strip().isascii() and value.strip().isdigit():
        port = int(value.strip())
    else:
        raise _invalid(f"invalid port: {value!r}")
    if not 1 <= port <= 65535:
        raise _invalid(f"port out of range: {port}")
    return port


def split_host_port(address: str) -> tuple[str, int]:
    """Split `host:port` or `[ipv6]:port`."""
    address = address.strip()
    if address.startswith("["):
        host, sep, rest = address[1:].partition("]")
        if not sep or not rest.startswith(":"):
            raise _invalid(f"invalid address: {address!r}")
        port_text = rest[1:]
    else:
        host, sep, port_text = address.rpartition(":")
        if not sep:
            raise _invalid(f"missing port in address: {address!r}")
    if not host:
        raise _invalid(f"missing host in address: {address!r}")
    return host, parse_port(port_text)


def _b64decode(data: str) -> str:
    normalized = data.strip().replace("+", "-").replace("/", "_")
    padded = normalized + "=" * (-len(normalized) % 4)
    try:
        return base64.urlsafe_b64decode(padded).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError, ValueError) as exc:
        raise _invalid(f"invalid base64 in ss:// link: {exc}") from exc


def _split_user_info(user_info: str) -> tuple[str, str]:
    cipher, sep, secret = user_info.partition(":")
    if not sep:
        raise _invalid("ss:// link user info must be <cipher>:<secret>")
    return cipher, secret


def parse_ss_url(url: str) -> ShadowsocksConfig:
    """Parse a SIP002 or legacy ss:// link."""
    url = url.strip()
    if not url.startswith(SS_URL_PREFIX):
        raise _invalid("not an ss:// link")
    body, _, _tag = url[len(SS_URL_PREFIX) :].partition("#")

    if "@" not in body:
        # Legacy form: the whole of cipher:secret@host:port is base64-encoded.
        decoded = _b64decode(unquote(body.rstrip("/")))
        user_info, sep, location = decoded.rpartition("@")
        if not sep:
            raise _invalid("legacy ss:// link is missing the server address")
        cipher, secret = _split_user_info(user_info)
    else:
        user_info, _, location = body.rpartition("@")
        location = _LOCATION_END_RE.split(location, maxsplit=1)[0]
        user_info = unquote(user_info)
        if ":" not in user_info:
            user_info = _b64decode(user_info)
        cipher, secret = _split_user_info(user_info)

    host, port = split_host_port(location)
    return ShadowsocksConfig(host=host, port=port, cipher=cipher, secret=secret)


def _optional_str(node: dict[str, Any], key: str) -> str:
    value = node.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise _invalid(f"'{key}' must be a string")
    return value


def _required_str(node: dict[str, Any], key: str) -> str:
    value = node.get(key)
    if not isinstance(value, str) or not value:
        raise _invalid(f"'{key}' is a required string")
    return value


def parse_endpoint(node: Any) -> tuple[str, int]:
    if isinstance(node, str):
        return split_host_port(node)
    if isinstance(node, dict):
        endpoint_type = node.get("$type", "dial")
        if endpoint_type != "dial":
            raise _invalid(f"unsupported endpoint type: {endpoint_type}")
        return split_host_port(_required_str(node, "address"))
    raise _invalid("'endpoint' must be an address string or a dial mapping")


class ShadowsocksTransportBuilder:
    """Builds Shadowsocks clients from normalized transport config text."""

    name = "shadowsocks"

    def __init__(self, allowed_ciphers: tuple[str, ...] = SUPPORTED_CIPHERS) -> None:
        self.allowed_ciphers = tuple(allowed_ciphers)

    def build(self, transport_config: str) -> TransportClient:
        text = transport_config.strip()
        if not text:
            raise _invalid("transport config is empty")

        if text.startswith(SS_URL_PREFIX):
            stream = packet = self._check(parse_ss_url(text))
        else:
            try:
                document = safe_load(text)
            except (yaml.YAMLError, RecursionError) as exc:
                raise _invalid(f"failed to parse transport config: {exc}") from exc
            stream, packet = self.parse_transport(document)

        logger.debug(
            "Built shadowsocks client: stream=%s packet=%s", stream.first_hop, packet.first_hop
        )
        return TransportClient(
            transport_config=transport_config,
            stream_dialer=ConnectionProviderInfo(first_hop=stream.first_hop),
            packet_listener=ConnectionProviderInfo(first_hop=packet.first_hop),
        )

    def parse_transport(self, node: Any) -> tuple[ShadowsocksConfig, ShadowsocksConfig]:
        """Return the (stream, packet) configs for a parsed transport document."""
        if isinstance(node, dict) and node.get("$type") == "tcpudp":
            if node.get("tcp") is None or node.get("udp") is None:
                raise _invalid("tcpudp config requires both 'tcp' and 'udp'")
            return self.parse_shadowsocks(node["tcp"]), self.parse_shadowsocks(node["udp"])
        config = self.parse_shadowsocks(node)
        return config, config

    def parse_shadowsocks(self, node: Any) -> ShadowsocksConfig:
        if isinstance(node, str):
            return self._check(parse_ss_url(node))
        if not isinstance(node, dict):
            raise _invalid("unsupported transport config")

        config_type = node.get("$type")
        if config_type is None and "server" in node:
            config = ShadowsocksConfig(
                host=_required_str(node, "server"),
                port=parse_port(node.get("server_port")),
                cipher=_required_str(node, "method"),
                secret=_required_str(node, "password"),
                prefix=_optional_str(node, "prefix"),
            )
        elif config_type in (None, "shadowsocks"):
            if "endpoint" not in node:
                raise _invalid("'endpoint' is required")
            host, port = parse_endpoint(node["endpoint"])
            config = ShadowsocksConfig(
                host=host,
                port=port,
                cipher=_required_str(node, "cipher"),
                secret=_required_str(node, "secret"),
                prefix=_optional_str(node, "prefix"),
            )
        else:
            raise _invalid(f"unsupported config type: {config_type}")
        return self._check(config)

    def _check(self, config: ShadowsocksConfig) -> ShadowsocksConfig:
        if config.cipher.lower() not in self.allowed_ciphers:
            raise _invalid(f"unsupported cipher: {config.cipher}")
        if not config.secret:
            raise _invalid("secret must not be empty")
        return config

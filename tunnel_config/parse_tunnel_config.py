"""Normalize tunnel config text into a transport config and its first hop.

Input may be one of:
- an `ss://` link, used as the transport config as-is
- a legacy flat Shadowsocks JSON document, also used as-is
- a structured YAML document with a `transport` subtree and/or a provider `error`
"""

from __future__ import annotations

import logging
from typing import Any

import yaml
from pydantic import ValidationError

from tunnel_config.dialect import Dialect, detect_dialect, safe_load
from tunnel_config.errors import ErrorCode, PlatformError
from tunnel_config.models import InvokeMethodResult, TunnelConfigRequest, TunnelConfigResponse
from tunnel_config.transport import default_transport_builder
from tunnel_config.transport.builder import TransportBuilder, TransportClient

logger = logging.getLogger(__name__)

# PyYAML closes open-ended top-level scalars with an explicit document end.
_DOCUMENT_END = "...\n"


def parse_tunnel_config_request(text: str) -> TunnelConfigRequest:
    try:
        return TunnelConfigRequest.model_validate(safe_load(text))
    except (yaml.YAMLError, RecursionError, ValidationError) as exc:
        raise PlatformError(ErrorCode.INVALID_CONFIG, f"failed to parse: {exc}") from exc


def provider_error(request: TunnelConfigRequest) -> PlatformError | None:
    """Build the ProviderError for an embedded `error` block, if there is one."""
    if request.error is None:
        return None
    details = {"details": request.error.details} if request.error.details else None
    return PlatformError(ErrorCode.PROVIDER_ERROR, request.error.message, details)


def render_transport_config(transport: Any) -> str:
    """Serialize the transport subtree back to YAML text."""
    try:
        text = yaml.safe_dump(
            transport,
            sort_keys=False,
            allow_unicode=True,
            default_flow_style=False,
        )
    except (yaml.YAMLError, RecursionError) as exc:
        raise PlatformError(
            ErrorCode.INVALID_CONFIG, f"failed to normalize config: {exc}"
        ) from exc

    if text.endswith("\n" + _DOCUMENT_END):
        text = text[: -len(_DOCUMENT_END)]
    return text


def resolve_transport_config(raw_input: str) -> str:
    """Return the transport config text for any accepted dialect.

    Raises PlatformError for unparseable input or an embedded provider error.
    """
    text = raw_input.strip()
    dialect = detect_dialect(text)
    if dialect is not Dialect.STRUCTURED:
        return text

    request = parse_tunnel_config_request(text)
    err = provider_error(request)
    if err is not None:
        # An error block wins over any transport next to it.
        raise err
    return render_transport_config(request.transport)


def first_hop(client: TransportClient) -> str:
    stream_first_hop = client.stream_dialer.first_hop
    packet_first_hop = client.packet_listener.first_hop
    if stream_first_hop == packet_first_hop:
        return stream_first_hop
    return ""


def assemble_response(transport_config: str, builder: TransportBuilder) -> str:
    client = builder.build(transport_config)
    response = TunnelConfigResponse(first_hop=first_hop(client), transport=transport_config)
    try:
        return response.to_json()
    except (TypeError, ValueError) as exc:
        raise PlatformError(
            ErrorCode.INTERNAL_ERROR, f"failed to serialize JSON response: {exc}"
        ) from exc


def parse_tunnel_config(
    raw_input: str,
    builder: TransportBuilder | None = None,
) -> InvokeMethodResult:
    """Normalize `raw_input` and wrap the outcome in an InvokeMethodResult."""
    transport_builder = builder or default_transport_builder()
    try:
        transport_config = resolve_transport_config(raw_input)
        value = assemble_response(transport_config, transport_builder)
    except PlatformError as err:
        logger.info("Tunnel config rejected: code=%s message=%s", err.code, err.message)
        return InvokeMethodResult(error=err)
    return InvokeMethodResult(value=value)

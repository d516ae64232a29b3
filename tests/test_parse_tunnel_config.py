import json
from dataclasses import dataclass, field

import pytest
import yaml

from tunnel_config.errors import ErrorCode, PlatformError
import tunnel_config.parse_tunnel_config as parse_module
from tunnel_config.models import InvokeMethodResult, TunnelConfigResponse
from tunnel_config.parse_tunnel_config import parse_tunnel_config, resolve_transport_config
from tunnel_config.transport.builder import ConnectionProviderInfo, TransportClient
from tunnel_config.transport.shadowsocks import ShadowsocksTransportBuilder


@dataclass
class FakeTransportBuilder:
    stream_first_hop: str = "1.2.3.4:8080"
    packet_first_hop: str = "1.2.3.4:8080"
    error: PlatformError | None = None
    name: str = "fake"
    received: list[str] = field(default_factory=list)

    def build(self, transport_config: str) -> TransportClient:
        self.received.append(transport_config)
        if self.error is not None:
            raise self.error
        return TransportClient(
            transport_config=transport_config,
            stream_dialer=ConnectionProviderInfo(first_hop=self.stream_first_hop),
            packet_listener=ConnectionProviderInfo(first_hop=self.packet_first_hop),
        )


def test_ss_link_is_passed_through_and_first_hop_reported() -> None:
    builder = FakeTransportBuilder()
    result = parse_tunnel_config("ss://example-host-info", builder)

    assert result.error is None
    assert json.loads(result.value) == {
        "transport": "ss://example-host-info",
        "firstHop": "1.2.3.4:8080",
    }
    assert builder.received == ["ss://example-host-info"]


def test_ss_link_is_trimmed_only() -> None:
    builder = FakeTransportBuilder()
    parse_tunnel_config("  \n ss://Example/Host#Tag \t\n", builder)
    assert builder.received == ["ss://Example/Host#Tag"]


def test_provider_error_with_details() -> None:
    builder = FakeTransportBuilder()
    result = parse_tunnel_config(
        "transport:\n  host: x\nerror:\n  message: quota exceeded\n  details: daily limit",
        builder,
    )

    assert result.value is None
    assert result.error.to_dict() == {
        "code": "ProviderError",
        "message": "quota exceeded",
        "details": {"details": "daily limit"},
    }
    assert builder.received == []


def test_provider_error_without_details_has_no_details_map() -> None:
    result = parse_tunnel_config("error:\n  message: server down", FakeTransportBuilder())
    assert result.error.to_dict() == {"code": "ProviderError", "message": "server down"}


def test_provider_error_with_empty_message_is_still_a_provider_error() -> None:
    result = parse_tunnel_config('error:\n  message: ""\n', FakeTransportBuilder())
    assert result.error.code == ErrorCode.PROVIDER_ERROR.value
    assert result.error.message == ""


@pytest.mark.parametrize(
    "raw_input",
    [
        "error:\n  details: no message\n",
        "error: just a string\n",
        "error:\n  message: [1, 2]\n",
    ],
)
def test_malformed_error_block_is_invalid_config(raw_input: str) -> None:
    builder = FakeTransportBuilder()
    result = parse_tunnel_config(raw_input, builder)

    assert result.error.code == "InvalidConfig"
    assert result.error.message.startswith("failed to parse:")
    assert builder.received == []


def test_null_error_block_falls_through_to_transport() -> None:
    builder = FakeTransportBuilder()
    result = parse_tunnel_config("transport: ss://abc\nerror: null\n", builder)

    assert result.error is None
    assert builder.received[0].strip() == "ss://abc"


def test_flat_json_is_used_verbatim() -> None:
    builder = FakeTransportBuilder()
    parse_tunnel_config('{"host":"x","port":1}', builder)
    assert builder.received == ['{"host":"x","port":1}']


def test_flat_json_keeps_original_formatting_and_key_order() -> None:
    raw = '{\n  "server_port": 8388,   "server": "x",\n  "password": "p"\n}'
    builder = FakeTransportBuilder()
    parse_tunnel_config(f"\n{raw}\n\n", builder)
    assert builder.received == [raw]


def test_structured_transport_is_reserialized_independent_of_formatting() -> None:
    yaml_doc = (
        "# provider comment\n"
        "transport:\n"
        "  $type: shadowsocks\n"
        "  endpoint:   example.com:443\n"
        "  cipher: aes-128-gcm\n"
        "  secret: s3cret\n"
    )
    json_doc = (
        '{"transport": {"$type": "shadowsocks", "endpoint": "example.com:443",'
        ' "cipher": "aes-128-gcm", "secret": "s3cret"}}'
    )

    from_yaml = resolve_transport_config(yaml_doc)
    from_json = resolve_transport_config(json_doc)

    assert from_yaml == from_json
    assert yaml.safe_load(from_yaml) == {
        "$type": "shadowsocks",
        "endpoint": "example.com:443",
        "cipher": "aes-128-gcm",
        "secret": "s3cret",
    }


def test_structured_response_echoes_normalized_transport() -> None:
    builder = FakeTransportBuilder()
    result = parse_tunnel_config("transport:\n  endpoint: a:1\nextra: ignored\n", builder)

    payload = json.loads(result.value)
    assert payload["transport"] == builder.received[0]
    assert yaml.safe_load(payload["transport"]) == {"endpoint": "a:1"}


@pytest.mark.parametrize(
    ("stream_hop", "packet_hop", "expected"),
    [
        ("1.2.3.4:8080", "1.2.3.4:8080", "1.2.3.4:8080"),
        ("1.2.3.4:8080", "5.6.7.8:8080", ""),
        ("1.2.3.4:8080", "1.2.3.4:8081", ""),
        ("", "", ""),
    ],
)
def test_first_hop_reported_only_when_both_paths_agree(
    stream_hop: str, packet_hop: str, expected: str
) -> None:
    builder = FakeTransportBuilder(stream_first_hop=stream_hop, packet_first_hop=packet_hop)
    result = parse_tunnel_config("ss://x", builder)
    assert json.loads(result.value)["firstHop"] == expected


@pytest.mark.parametrize(
    "raw_input",
    [
        "transport: [unterminated",
        '{"host": "x"',
        "just some text",
        "- a\n- b\n",
        "[" * 5000 + "]" * 5000,
        "{\"transport\": " * 3000 + "1" + "}" * 3000,
    ],
)
def test_malformed_documents_yield_invalid_config(raw_input: str) -> None:
    builder = FakeTransportBuilder()
    result = parse_tunnel_config(raw_input, builder)

    assert result.error.code == "InvalidConfig"
    assert result.error.message.startswith("failed to parse:")
    assert builder.received == []


def test_error_takes_precedence_over_transport() -> None:
    builder = FakeTransportBuilder()
    result = parse_tunnel_config(
        '{"transport": "ss://abc", "error": {"message": "blocked"}}', builder
    )
    assert result.error.code == "ProviderError"
    assert result.error.message == "blocked"
    assert builder.received == []


def test_empty_input_goes_to_builder_as_legacy_config() -> None:
    builder = FakeTransportBuilder()
    parse_tunnel_config("   \n", builder)
    assert builder.received == [""]


def test_builder_error_is_passed_through_unchanged() -> None:
    upstream = PlatformError("ERR_UNREACHABLE", "cannot reach", {"host": "x"})
    result = parse_tunnel_config("ss://x", FakeTransportBuilder(error=upstream))

    assert result.error is upstream
    assert result.error.to_dict() == {
        "code": "ERR_UNREACHABLE",
        "message": "cannot reach",
        "details": {"host": "x"},
    }


def test_normalization_failure_is_invalid_config(monkeypatch: pytest.MonkeyPatch) -> None:
    def broken_dump(*args, **kwargs):
        raise yaml.representer.RepresenterError("cannot represent")

    monkeypatch.setattr(yaml, "safe_dump", broken_dump)
    result = parse_tunnel_config("transport:\n  a: 1\n", FakeTransportBuilder())

    assert result.error.code == "InvalidConfig"
    assert result.error.message.startswith("failed to normalize config:")


def test_response_serialization_failure_is_internal_error(monkeypatch: pytest.MonkeyPatch) -> None:
    class UnserializableResponse(TunnelConfigResponse):
        def to_json(self) -> str:
            raise ValueError("boom")

    monkeypatch.setattr(parse_module, "TunnelConfigResponse", UnserializableResponse)
    result = parse_tunnel_config("ss://x", FakeTransportBuilder())

    assert result.error.code == "InternalError"
    assert result.error.message == "failed to serialize JSON response: boom"


def test_invoke_method_result_requires_exactly_one_field() -> None:
    with pytest.raises(ValueError):
        InvokeMethodResult()
    with pytest.raises(ValueError):
        InvokeMethodResult(value="x", error=PlatformError(ErrorCode.INTERNAL_ERROR, "y"))

    assert InvokeMethodResult(value="{}").to_dict() == {"value": "{}"}
    failed = InvokeMethodResult(error=PlatformError(ErrorCode.INVALID_CONFIG, "bad"))
    assert json.loads(failed.to_json()) == {"error": {"code": "InvalidConfig", "message": "bad"}}


def test_tab_indented_flat_json_is_used_verbatim() -> None:
    raw = (
        '{\n\t"server": "10.0.0.2",\n\t"server_port": 8388,\n'
        '\t"method": "aes-128-gcm",\n\t"password": "pw"\n}'
    )
    builder = FakeTransportBuilder()
    result = parse_tunnel_config(raw, builder)

    assert result.error is None
    assert builder.received == [raw]


def test_tab_indented_structured_json_extracts_transport() -> None:
    builder = FakeTransportBuilder()
    parse_tunnel_config('{\n\t"transport": {\n\t\t"endpoint": "a:1"\n\t}\n}', builder)
    assert yaml.safe_load(builder.received[0]) == {"endpoint": "a:1"}


@pytest.mark.parametrize(
    "raw_input",
    [
        "ss://aes-128-gcm:pw@host:²",
        "ss://aes-128-gcm:pw@host:٣٤",
        '{"server": "h", "server_port": "²", "method": "aes-128-gcm", "password": "p"}',
    ],
)
def test_non_ascii_digit_ports_are_invalid_config(raw_input: str) -> None:
    result = parse_tunnel_config(raw_input, ShadowsocksTransportBuilder())

    assert result.value is None
    assert result.error.code == "InvalidConfig"

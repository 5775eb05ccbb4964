import json

import pytest

from protochain import exceptions
from protochain.models import AggregatedResponse
from protochain.models import NegotiationConfig
from protochain.models import ProtocolObservation
from protochain.models import with_query


class TestProtocolObservation:
    def test_roundtrip(self):
        o = ProtocolObservation("HTTP/2.0")
        assert ProtocolObservation.from_json(o.to_json()) == o

    def test_wire_format(self):
        assert ProtocolObservation("HTTP/1.1").to_json() == b'{"protocol":"HTTP/1.1"}'

    def test_immutable(self):
        o = ProtocolObservation("HTTP/1.1")
        with pytest.raises(AttributeError):
            o.request_protocol = "HTTP/2.0"  # type: ignore

    @pytest.mark.parametrize("data", [
        b"",
        b"not json",
        b"[]",
        b'{"protocol": 2}',
        b'{"proto": "HTTP/1.1"}',
        b"\xff\xfe",
    ])
    def test_invalid(self, data):
        with pytest.raises(exceptions.ProtocolDecodeError):
            ProtocolObservation.from_json(data)


class TestAggregatedResponse:
    def make(self):
        return AggregatedResponse(
            response_code="200",
            response_protocol="HTTP/2.0",
            relay_observation=ProtocolObservation("HTTP/2.0"),
            origin_observation=ProtocolObservation("HTTP/1.1"),
        )

    def test_wire_format(self):
        assert json.loads(self.make().to_json()) == {
            "code": "200",
            "protocol": "HTTP/2.0",
            "proxy_response": {"protocol": "HTTP/2.0"},
            "server_response": {"protocol": "HTTP/1.1"},
        }

    def test_roundtrip(self):
        a = self.make()
        assert AggregatedResponse.from_json(a.to_json()) == a

    @pytest.mark.parametrize("data", [
        b"{}",
        b'{"code": 200, "protocol": "HTTP/1.1"}',
        b'{"code": "200", "protocol": "HTTP/1.1", "proxy_response": {"protocol": "HTTP/1.1"}}',
        b'{"error": "UpstreamError", "message": "relay answered 502"}',
        b"<html>",
    ])
    def test_invalid(self, data):
        with pytest.raises(exceptions.ProtocolDecodeError):
            AggregatedResponse.from_json(data)


class TestNegotiationConfig:
    @pytest.mark.parametrize("query, edge, relay", [
        ("", False, False),
        ("client-http2=true", True, False),
        ("proxy-http2=true", False, True),
        ("client-http2=true&proxy-http2=true", True, True),
        ("client-http2=TRUE&proxy-http2=1", False, False),
        ("client-http2=&proxy-http2", False, False),
        ("client-http2=false&proxy-http2=true&other=x", False, True),
    ])
    def test_from_query(self, query, edge, relay):
        c = NegotiationConfig.from_query(query)
        assert c.edge_uses_http2 is edge
        assert c.relay_uses_http2 is relay

    def test_to_query(self):
        c = NegotiationConfig(edge_uses_http2=True, relay_uses_http2=False)
        assert c.to_query() == "client-http2=true&proxy-http2=false"
        assert NegotiationConfig.from_query(c.to_query()) == c


def test_with_query():
    assert with_query("https://127.0.0.1:8001", "/", "") == "https://127.0.0.1:8001/"
    assert with_query("https://127.0.0.1:8001/", "/x", "a=1") == "https://127.0.0.1:8001/x?a=1"
    assert with_query("https://h:1", "x", "client-http2=TRUE") == "https://h:1/x?client-http2=TRUE"

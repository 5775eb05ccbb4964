from __future__ import annotations

import json
import urllib.parse
from dataclasses import dataclass
from typing import Any

from protochain import exceptions

EDGE_FLAG = "client-http2"
RELAY_FLAG = "proxy-http2"


@dataclass(frozen=True)
class ProtocolObservation:
    """The wire protocol a hop saw on one inbound request, e.g. "HTTP/2.0"."""

    request_protocol: str

    def get_state(self) -> dict[str, Any]:
        return {"protocol": self.request_protocol}

    @classmethod
    def from_state(cls, state: Any) -> ProtocolObservation:
        if not isinstance(state, dict) or not isinstance(state.get("protocol"), str):
            raise exceptions.ProtocolDecodeError(f"Not a protocol observation: {state!r}")
        return cls(state["protocol"])

    def to_json(self) -> bytes:
        return json.dumps(self.get_state(), separators=(",", ":")).encode()

    @classmethod
    def from_json(cls, data: bytes | str) -> ProtocolObservation:
        try:
            state = json.loads(data)
        except (ValueError, UnicodeDecodeError) as e:
            raise exceptions.ProtocolDecodeError(f"Invalid observation JSON: {e}") from e
        return cls.from_state(state)


@dataclass(frozen=True)
class AggregatedResponse:
    """
    The Edge's combined view of one request's path through the chain.

    `response_code` and `response_protocol` describe the Edge's own call to the
    Relay; the two observations are what Relay and Origin saw inbound.
    """

    response_code: str
    response_protocol: str
    relay_observation: ProtocolObservation
    origin_observation: ProtocolObservation

    def get_state(self) -> dict[str, Any]:
        return {
            "code": self.response_code,
            "protocol": self.response_protocol,
            "proxy_response": self.relay_observation.get_state(),
            "server_response": self.origin_observation.get_state(),
        }

    @classmethod
    def from_state(cls, state: Any) -> AggregatedResponse:
        if not isinstance(state, dict):
            raise exceptions.ProtocolDecodeError(f"Not an aggregated response: {state!r}")
        code = state.get("code")
        protocol = state.get("protocol")
        if not isinstance(code, str) or not isinstance(protocol, str):
            raise exceptions.ProtocolDecodeError(f"Not an aggregated response: {state!r}")
        return cls(
            response_code=code,
            response_protocol=protocol,
            relay_observation=ProtocolObservation.from_state(state.get("proxy_response")),
            origin_observation=ProtocolObservation.from_state(state.get("server_response")),
        )

    def to_json(self) -> bytes:
        return json.dumps(self.get_state(), separators=(",", ":")).encode()

    @classmethod
    def from_json(cls, data: bytes | str) -> AggregatedResponse:
        try:
            state = json.loads(data)
        except (ValueError, UnicodeDecodeError) as e:
            raise exceptions.ProtocolDecodeError(f"Invalid aggregated response JSON: {e}") from e
        return cls.from_state(state)


@dataclass(frozen=True)
class NegotiationConfig:
    """
    Which hops negotiate HTTP/2 on their outbound call.

    Derived from the query string of every request; only the literal value
    "true" enables a flag.
    """

    edge_uses_http2: bool = False
    relay_uses_http2: bool = False

    @classmethod
    def from_query(cls, query_string: str) -> NegotiationConfig:
        params = urllib.parse.parse_qs(query_string, keep_blank_values=True)
        return cls(
            edge_uses_http2=params.get(EDGE_FLAG, [""])[0] == "true",
            relay_uses_http2=params.get(RELAY_FLAG, [""])[0] == "true",
        )

    def to_query(self) -> str:
        return urllib.parse.urlencode({
            EDGE_FLAG: str(self.edge_uses_http2).lower(),
            RELAY_FLAG: str(self.relay_uses_http2).lower(),
        })


def with_query(base_url: str, path: str, query_string: str) -> str:
    """
    Join a downstream base URL with a path and re-attach a raw query string verbatim.
    """
    url = base_url.rstrip("/") + (path if path.startswith("/") else "/" + path)
    if query_string:
        url = f"{url}?{query_string}"
    return url

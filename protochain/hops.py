"""
The protocol-reporting hop.

One class covers every endpoint of the chain. What a hop does with a request
depends only on its role:

 - Origin reports the protocol it observed.
 - Relay reports the protocol it observed, then forwards the request to the
   Origin and appends the Origin's body after the sentinel.
 - Edge calls the Relay and decomposes its body into an AggregatedResponse.
 - Presenter calls the Edge and renders the result as HTML.

Which protocol a hop speaks downstream is decided by the transport selector it
was built with, and the negotiation flags of the request at hand.
"""

from __future__ import annotations

import asyncio
import enum
import json
import logging
import math
import os
import urllib.parse
from collections.abc import Callable

import tornado.template

from protochain import exceptions
from protochain import framing
from protochain.http import TIMEOUT_HEADER
from protochain.http import Headers
from protochain.http import Request
from protochain.http import Response
from protochain.models import AggregatedResponse
from protochain.models import NegotiationConfig
from protochain.models import ProtocolObservation
from protochain.models import with_query
from protochain.transport import Transport

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0

TransportSelector = Callable[[bool], Transport]

# Inbound headers that are not passed on to the next hop.
_HOP_BY_HOP = (
    "host",
    "connection",
    "keep-alive",
    "proxy-connection",
    "transfer-encoding",
    "upgrade",
    "te",
    "trailer",
    "content-length",
    TIMEOUT_HEADER,
)

_templates = tornado.template.Loader(
    os.path.join(os.path.dirname(__file__), "templates"), autoescape="xhtml_escape"
)


class Role(enum.Enum):
    ORIGIN = "server"
    RELAY = "proxy"
    EDGE = "client"
    PRESENTER = "ui"


class Hop:
    def __init__(
        self,
        role: Role,
        downstream: str | None = None,
        select_transport: TransportSelector | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        name: str | None = None,
    ):
        if role is not Role.ORIGIN and (downstream is None or select_transport is None):
            raise exceptions.ConfigurationError(
                f"A {role.name.lower()} hop needs a downstream address and a transport selector."
            )
        if not timeout > 0:
            raise exceptions.ConfigurationError(f"Invalid timeout: {timeout}")
        self.role = role
        self.downstream = downstream
        self.select_transport = select_transport
        self.timeout = timeout
        self.name = name or role.name.capitalize()

    def __repr__(self):
        return f"Hop({self.role.name}, downstream={self.downstream!r})"

    async def handle(self, request: Request) -> Response:
        handler = {
            Role.ORIGIN: self.handle_origin,
            Role.RELAY: self.handle_relay,
            Role.EDGE: self.handle_edge,
            Role.PRESENTER: self.handle_presenter,
        }[self.role]
        logger.debug(
            f"{request.http_version} {request.method} {request.path}",
            extra={"hop": self.name},
        )
        return await handler(request)

    async def handle_origin(self, request: Request) -> Response:
        observation = ProtocolObservation(request.http_version)
        return Response.make(200, observation.to_json(), [("content-type", "application/json")])

    async def handle_relay(self, request: Request) -> Response:
        prefix = framing.encode_prefix(ProtocolObservation(request.http_version))
        config = NegotiationConfig.from_query(request.query_string)

        assert self.downstream
        headers = forwarded_headers(request.headers)
        headers.add("x-forwarded-host", request.authority)
        headers.add("x-origin-host", urllib.parse.urlsplit(self.downstream).netloc)
        try:
            upstream = await self.forward(request, config.relay_uses_http2, headers)
            if not upstream.ok:
                raise exceptions.UpstreamError(
                    f"origin answered {upstream.status_code}", upstream.status_code
                )
        except (exceptions.ProtochainException, TimeoutError) as e:
            self.log_failure(e)
            return Response.make(error_status(e), f"{self.name}: {e}\n")

        return Response.make(200, prefix + upstream.content)

    async def aggregate(self, request: Request) -> AggregatedResponse:
        """
        Call the Relay with this request's flags and combine what every hop observed.

        *Raises:*
         - UpstreamError, if the Relay does not answer with 2xx.
         - ProtocolDecodeError, if the Relay's body is not properly framed.
         - TransportError, ConfigurationError or TimeoutError, if the call itself fails.
        """
        config = NegotiationConfig.from_query(request.query_string)
        outbound = Request(
            method="GET",
            scheme=request.scheme,
            authority=request.authority,
            path=request.path,
            headers=request.headers,
        )
        response = await self.forward(outbound, config.edge_uses_http2, forwarded_headers(request.headers))
        if not response.ok:
            raise exceptions.UpstreamError(
                f"relay answered {response.status_code}: {response.content.decode(errors='replace').strip()}",
                response.status_code,
            )
        relay_observation, origin_observation = framing.decode(response.content)
        return AggregatedResponse(
            response_code=str(response.status_code),
            response_protocol=response.http_version,
            relay_observation=relay_observation,
            origin_observation=origin_observation,
        )

    async def handle_edge(self, request: Request) -> Response:
        try:
            aggregated = await self.aggregate(request)
        except (exceptions.ProtochainException, TimeoutError) as e:
            self.log_failure(e)
            status = error_status(e)
            if status < 500:
                status = 502
            return Response.make_json(status, {"error": type(e).__name__, "message": str(e)})
        return Response.make(200, aggregated.to_json(), [("content-type", "application/json")])

    async def query_edge(self, request: Request) -> AggregatedResponse:
        response = await self.forward(request, False, Headers())
        if not response.ok:
            raise exceptions.UpstreamError(
                f"edge answered {response.status_code}: {error_message(response)}",
                response.status_code,
            )
        return AggregatedResponse.from_json(response.content)

    async def handle_presenter(self, request: Request) -> Response:
        config = NegotiationConfig.from_query(request.query_string)
        aggregated: AggregatedResponse | None = None
        error: str | None = None
        status = 200
        try:
            aggregated = await self.query_edge(request)
        except (exceptions.ProtochainException, TimeoutError) as e:
            self.log_failure(e)
            error = f"{type(e).__name__}: {e}"
            status = error_status(e)
        page = _templates.load("presenter.html").generate(
            config=config,
            response=aggregated,
            error=error,
        )
        return Response.make(status, page, [("content-type", "text/html; charset=utf-8")])

    def budget(self, request: Request) -> float:
        """
        Seconds this hop may spend on its downstream call: its own timeout,
        narrowed by whatever budget the caller passed along.
        """
        budget = self.timeout
        if (raw := request.headers.get(TIMEOUT_HEADER)) is not None:
            try:
                inbound = float(raw)
            except ValueError:
                logger.debug(f"Ignoring invalid {TIMEOUT_HEADER}: {raw!r}", extra={"hop": self.name})
            else:
                if math.isfinite(inbound):
                    budget = min(budget, max(inbound, 0.0))
        return budget

    async def forward(self, request: Request, use_http2: bool, headers: Headers) -> Response:
        """
        Issue `request`'s method, path, raw query string and body against the downstream hop.
        """
        assert self.downstream and self.select_transport
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.budget(request)

        transport = self.select_transport(use_http2)
        url = with_query(self.downstream, request.path.partition("?")[0], request.query_string)
        outbound = Request.make(request.method, url, request.content, headers)
        outbound.headers.set(TIMEOUT_HEADER, f"{max(deadline - loop.time(), 0.0):.3f}")
        logger.debug(f"{request.method} {url} via {transport!r}", extra={"hop": self.name})

        if deadline <= loop.time():
            raise TimeoutError(f"{self.name}: no time left to call {self.downstream}")
        try:
            async with asyncio.timeout_at(deadline):
                return await transport.issue(outbound)
        except TimeoutError as e:
            raise TimeoutError(f"{self.downstream} did not answer in time") from e

    def log_failure(self, e: Exception) -> None:
        logger.warning(f"{type(e).__name__}: {e}", extra={"hop": self.name})


def forwarded_headers(headers: Headers) -> Headers:
    return Headers((k, v) for k, v in headers.fields if k not in _HOP_BY_HOP)


def error_status(e: Exception) -> int:
    if isinstance(e, TimeoutError):
        return 504
    if isinstance(e, exceptions.UpstreamError) and e.status_code and e.status_code >= 400:
        return e.status_code
    if isinstance(e, exceptions.ConfigurationError):
        return 500
    return 502


def error_message(response: Response) -> str:
    """
    Extract the message of a JSON error document, falling back to the raw body.
    """
    if response.headers.get("content-type", "").startswith("application/json"):
        try:
            return str(json.loads(response.content)["message"])
        except (ValueError, KeyError, TypeError):
            pass
    return response.content.decode(errors="replace").strip()

from __future__ import annotations

import asyncio
import socket
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path

import pytest

from protochain import certs
from protochain import transport
from protochain.chain import make_selector
from protochain.hops import Hop
from protochain.hops import Role
from protochain.http import Request
from protochain.http import Response
from protochain.net import tls
from protochain.server import Handler
from protochain.server import HopServer


@pytest.fixture(scope="session")
def tls_files(tmp_path_factory) -> tuple[Path, Path]:
    d = tmp_path_factory.mktemp("certs")
    private_key, cert = certs.create_self_signed("localhost", ["localhost", "127.0.0.1"])
    certs.write_pem_pair(private_key, cert, d / "server.crt", d / "server.key")
    return d / "server.crt", d / "server.key"


@pytest.fixture(scope="session")
def trust_root(tls_files) -> certs.TrustRoot:
    return certs.TrustRoot.from_file(tls_files[0])


@pytest.fixture(scope="session")
def other_trust_root() -> certs.TrustRoot:
    _, cert = certs.create_self_signed("someone-else", ["localhost", "127.0.0.1"])
    return certs.TrustRoot(cert)


@pytest.fixture
def server_context(tls_files):
    certfile, keyfile = tls_files
    return tls.create_server_context(str(certfile), str(keyfile))


@pytest.fixture
def unused_port() -> int:
    """
    A port nothing listens on, for simulating an unreachable hop.
    """
    s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    s.bind(("127.0.0.1", 0))
    port = s.getsockname()[1]
    s.close()
    return port


@dataclass
class Chain:
    origin: Hop
    relay: Hop
    edge: Hop
    presenter: Hop
    origin_server: HopServer
    relay_server: HopServer
    edge_server: HopServer
    presenter_server: HopServer
    received: list[Request]
    """Requests as they arrived at the origin."""

    async def get(self, server: HopServer, query: str = "", path: str = "/") -> Response:
        url = server.url + path
        if query:
            url += "?" + query
        return await transport.plain("test").issue(Request.make("GET", url))


@pytest.fixture
def chain_factory(trust_root, server_context):
    @asynccontextmanager
    async def make(
        timeout: float = 5.0,
        origin_handler: Handler | None = None,
        relay_upstream: str | None = None,
    ):
        received: list[Request] = []
        origin = Hop(Role.ORIGIN, timeout=timeout)

        async def record(request: Request) -> Response:
            received.append(request)
            return await (origin_handler or origin.handle)(request)

        async with HopServer("Origin", record, ssl_context=server_context) as origin_server:
            downstream = relay_upstream or origin_server.url
            relay = Hop(Role.RELAY, downstream, make_selector(downstream, trust_root, "Relay"), timeout)
            async with HopServer("Relay", relay.handle, ssl_context=server_context) as relay_server:
                edge = Hop(Role.EDGE, relay_server.url, make_selector(relay_server.url, trust_root, "Edge"), timeout)
                async with HopServer("Edge", edge.handle) as edge_server:
                    presenter = Hop(
                        Role.PRESENTER,
                        edge_server.url,
                        make_selector(edge_server.url, trust_root, "Presenter"),
                        timeout,
                    )
                    async with HopServer("Presenter", presenter.handle) as presenter_server:
                        yield Chain(
                            origin, relay, edge, presenter,
                            origin_server, relay_server, edge_server, presenter_server,
                            received,
                        )

    return make


class AsyncLogCaptureFixture:
    def __init__(self, caplog: pytest.LogCaptureFixture):
        self.caplog = caplog

    def set_level(self, level: int | str, logger: str | None = None) -> None:
        self.caplog.set_level(level, logger)

    async def await_log(self, text, timeout=2):
        await asyncio.sleep(0)
        for i in range(int(timeout / 0.01)):
            if text in self.caplog.text:
                return True
            else:
                await asyncio.sleep(0.01)
        raise AssertionError(f"Did not find {text!r} in log:\n{self.caplog.text}")

    def clear(self) -> None:
        self.caplog.clear()


@pytest.fixture
def caplog_async(caplog):
    return AsyncLogCaptureFixture(caplog)

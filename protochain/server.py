"""
The listening side of a hop.

A HopServer accepts connections, lets ALPN decide between HTTP/1.1 (h11) and
HTTP/2 (h2), and hands every complete request to an async handler. Handlers
never see the wire protocol except through `Request.http_version`.
"""

from __future__ import annotations

import asyncio
import logging
import ssl
import traceback
from collections.abc import Awaitable
from collections.abc import Callable

import h11
import h2.events
import h2.exceptions

from protochain.http import HTTP2
from protochain.http import Headers
from protochain.http import Request
from protochain.http import Response
from protochain.net import http2
from protochain.transport import base

logger = logging.getLogger(__name__)

Handler = Callable[[Request], Awaitable[Response]]

# Headers the connection layer owns and recomputes for each response.
_CONNECTION_HEADERS = ("content-length", "transfer-encoding", "connection", "keep-alive", "upgrade", "proxy-connection")


class HopServer:
    """
    One listening endpoint. Each connection runs in its own task,
    and on HTTP/2 each stream is handled in its own task.
    """

    def __init__(
        self,
        name: str,
        handler: Handler,
        host: str = "127.0.0.1",
        port: int = 0,
        ssl_context: ssl.SSLContext | None = None,
    ):
        self.name = name
        self.handler = handler
        self.host = host
        self.port = port
        self.ssl_context = ssl_context
        self._server: asyncio.Server | None = None
        self._connections: set[asyncio.Task] = set()

    def __repr__(self):
        return f"HopServer({self.name}, {len(self._connections)} active conns)"

    @property
    def scheme(self) -> str:
        return "https" if self.ssl_context else "http"

    @property
    def is_running(self) -> bool:
        return self._server is not None and self._server.is_serving()

    def listen_addrs(self) -> list[tuple]:
        if self._server is None:
            return []
        return [s.getsockname() for s in self._server.sockets]

    @property
    def url(self) -> str:
        """
        The base URL under which this server is reachable, e.g. https://127.0.0.1:8001
        """
        addrs = self.listen_addrs()
        if not addrs:
            raise RuntimeError(f"{self.name} is not listening.")
        host, port = addrs[0][:2]
        if ":" in host:
            host = f"[{host}]"
        return f"{self.scheme}://{host}:{port}"

    async def start(self) -> None:
        assert self._server is None
        self._server = await asyncio.start_server(
            self.handle_connection, self.host, self.port, ssl=self.ssl_context
        )
        logger.info(f"Starting {self.name} on {self.url}", extra={"hop": self.name})

    async def stop(self) -> None:
        if self._server is None:
            return
        server, self._server = self._server, None
        server.close()
        for task in list(self._connections):
            task.cancel()
        await server.wait_closed()
        logger.info(f"Stopped {self.name}.", extra={"hop": self.name})

    async def serve_forever(self) -> None:
        if self._server is None:
            await self.start()
        assert self._server is not None
        await self._server.serve_forever()

    async def __aenter__(self) -> HopServer:
        await self.start()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.stop()

    async def handle_connection(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        task = asyncio.current_task()
        assert task
        self._connections.add(task)
        peername = writer.get_extra_info("peername")
        ssl_object = writer.get_extra_info("ssl_object")
        alpn = ssl_object.selected_alpn_protocol() if ssl_object else None
        conn_cls = Http2ServerConnection if alpn == "h2" else Http1ServerConnection
        logger.debug(f"{peername} connected ({alpn=})", extra={"hop": self.name})
        try:
            await conn_cls(self, reader, writer).run()
        except (OSError, h11.ProtocolError, h2.exceptions.H2Error) as e:
            logger.debug(f"{peername} connection error: {e!r}", extra={"hop": self.name})
        finally:
            self._connections.discard(task)
            await base.close(writer)

    async def respond(self, request: Request) -> Response:
        try:
            return await self.handler(request)
        except Exception:
            logger.error(
                f"{self.name} failed to handle {request.method} {request.path}:\n{traceback.format_exc()}",
                extra={"hop": self.name},
            )
            return Response.make(500, f"{self.name}: internal error\n")


class Http1ServerConnection:
    def __init__(self, server: HopServer, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        self.server = server
        self.reader = reader
        self.writer = writer
        self.conn = h11.Connection(our_role=h11.SERVER)

    async def next_event(self):
        while True:
            event = self.conn.next_event()
            if event is h11.NEED_DATA:
                self.conn.receive_data(await self.reader.read(base.READ_SIZE))
            else:
                return event

    async def run(self) -> None:
        while True:
            try:
                event = await self.next_event()
                if isinstance(event, h11.ConnectionClosed):
                    return
                assert isinstance(event, h11.Request)
                content = bytearray()
                while True:
                    part = await self.next_event()
                    if isinstance(part, h11.Data):
                        content += part.data
                    elif isinstance(part, h11.EndOfMessage):
                        break
                    elif isinstance(part, h11.ConnectionClosed):
                        return
            except h11.RemoteProtocolError as e:
                if self.conn.our_state in (h11.IDLE, h11.SEND_RESPONSE):
                    await self.send(Response.make(e.error_status_hint, f"Bad request: {e}\n"))
                return

            headers = Headers(event.headers)
            request = Request(
                method=event.method.decode(),
                scheme=self.server.scheme,
                authority=headers.get("host", ""),
                path=event.target.decode(),
                headers=headers,
                content=bytes(content),
                http_version="HTTP/" + event.http_version.decode(),
            )
            response = await self.server.respond(request)
            await self.send(response, request.method)

            if self.conn.our_state is h11.MUST_CLOSE or self.conn.their_state is h11.MUST_CLOSE:
                return
            self.conn.start_next_cycle()

    async def send(self, response: Response, method: str = "GET") -> None:
        """
        Write a complete response. Responses to HEAD keep their content-length but carry no body.
        """
        headers = [(k, v) for k, v in response.headers.raw() if k.decode() not in _CONNECTION_HEADERS]
        headers.append((b"content-length", str(len(response.content)).encode()))
        data = self.conn.send(h11.Response(
            status_code=response.status_code,
            headers=headers,
            reason=response.reason.encode(),
        ))
        if response.content and method != "HEAD":
            data += self.conn.send(h11.Data(data=response.content))
        data += self.conn.send(h11.EndOfMessage())
        self.writer.write(data)
        await self.writer.drain()


class Http2ServerConnection:
    def __init__(self, server: HopServer, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        self.server = server
        self.reader = reader
        self.writer = writer
        self.conn = http2.BufferedH2Connection(http2.make_config(client_side=False, hop=server.name))
        self.streams: dict[int, tuple[list[tuple[bytes, bytes]], bytearray]] = {}
        self.stream_tasks: set[asyncio.Task] = set()

    async def flush(self) -> None:
        if data := self.conn.data_to_send():
            self.writer.write(data)
            await self.writer.drain()

    async def run(self) -> None:
        self.conn.initiate_connection()
        await self.flush()
        try:
            while data := await self.reader.read(base.READ_SIZE):
                terminated = False
                for event in self.conn.receive_data(data):
                    if isinstance(event, h2.events.RequestReceived):
                        self.streams[event.stream_id] = (event.headers, bytearray())
                    elif isinstance(event, h2.events.DataReceived):
                        if event.stream_id in self.streams:
                            self.streams[event.stream_id][1].extend(event.data)
                        self.conn.acknowledge_received_data(event.flow_controlled_length, event.stream_id)
                    elif isinstance(event, h2.events.StreamEnded):
                        if event.stream_id in self.streams:
                            headers, content = self.streams.pop(event.stream_id)
                            task = asyncio.create_task(self.handle_stream(event.stream_id, headers, bytes(content)))
                            self.stream_tasks.add(task)
                            task.add_done_callback(self.stream_tasks.discard)
                    elif isinstance(event, h2.events.StreamReset):
                        self.streams.pop(event.stream_id, None)
                    elif isinstance(event, h2.events.ConnectionTerminated):
                        terminated = True
                await self.flush()
                if terminated:
                    break
            if self.stream_tasks:
                await asyncio.wait(self.stream_tasks)
        finally:
            for task in self.stream_tasks:
                task.cancel()

    async def handle_stream(self, stream_id: int, raw_headers: list[tuple[bytes, bytes]], content: bytes) -> None:
        pseudo, regular = http2.pseudo_headers(raw_headers)
        headers = Headers(regular)
        request = Request(
            method=pseudo.get(b":method", b"GET").decode(),
            scheme=pseudo.get(b":scheme", b"https").decode(),
            authority=pseudo.get(b":authority", b"").decode() or headers.get("host", ""),
            path=pseudo.get(b":path", b"/").decode(),
            headers=headers,
            content=content,
            http_version=HTTP2,
        )
        response = await self.server.respond(request)

        out = [(b":status", str(response.status_code).encode())]
        out += [(k, v) for k, v in response.headers.raw() if k.decode() not in _CONNECTION_HEADERS]
        out.append((b"content-length", str(len(response.content)).encode()))
        has_body = bool(response.content) and request.method != "HEAD"
        try:
            self.conn.send_headers(stream_id, out, end_stream=not has_body)
            if has_body:
                self.conn.send_data(stream_id, response.content, end_stream=True)
        except h2.exceptions.StreamClosedError:
            logger.debug(f"stream {stream_id} was closed before the response was sent", extra={"hop": self.server.name})
            return
        await self.flush()

import h2.events
import h2.exceptions

from protochain import exceptions
from protochain.http import HTTP2
from protochain.http import Headers
from protochain.http import Request
from protochain.http import Response
from protochain.net import http2
from protochain.transport import base

# RFC 7540 8.1.2.2: connection-specific headers must not be sent over HTTP/2.
_FORBIDDEN_HEADERS = (b"host", b"connection", b"keep-alive", b"proxy-connection", b"transfer-encoding", b"upgrade", b"content-length")


class Http2Transport(base.Transport):
    alpn = "h2"

    async def issue(self, request: Request) -> Response:
        reader, writer = await self.connect(request)
        try:
            conn = http2.BufferedH2Connection(http2.make_config(client_side=True, hop=self.hop))
            conn.initiate_connection()
            stream_id = conn.get_next_available_stream_id()
            headers = [
                (b":method", request.method.encode()),
                (b":scheme", request.scheme.encode()),
                (b":authority", request.authority.encode("idna")),
                (b":path", request.path.encode()),
            ]
            headers += [(k, v) for k, v in request.headers.raw() if k not in _FORBIDDEN_HEADERS]
            if request.content:
                headers.append((b"content-length", str(len(request.content)).encode()))
            conn.send_headers(stream_id, headers, end_stream=not request.content)
            if request.content:
                conn.send_data(stream_id, request.content, end_stream=True)
            writer.write(conn.data_to_send())
            await writer.drain()

            response: Response | None = None
            content = bytearray()
            done = False
            while not done:
                data = await reader.read(base.READ_SIZE)
                if not data:
                    raise exceptions.TransportError(
                        f"{request.authority} closed the connection before responding."
                    )
                for event in conn.receive_data(data):
                    if getattr(event, "stream_id", stream_id) != stream_id:
                        continue
                    if isinstance(event, h2.events.ResponseReceived):
                        pseudo, regular = http2.pseudo_headers(event.headers)
                        response = Response(
                            status_code=int(pseudo[b":status"]),
                            headers=Headers(regular),
                            http_version=HTTP2,
                        )
                    elif isinstance(event, h2.events.DataReceived):
                        content += event.data
                        conn.acknowledge_received_data(event.flow_controlled_length, event.stream_id)
                    elif isinstance(event, h2.events.StreamEnded):
                        done = True
                    elif isinstance(event, h2.events.StreamReset):
                        raise exceptions.TransportError(
                            f"{request.authority} reset the stream (error code {event.error_code})."
                        )
                    elif isinstance(event, h2.events.ConnectionTerminated) and not done:
                        raise exceptions.TransportError(
                            f"{request.authority} terminated the connection (error code {event.error_code})."
                        )
                writer.write(conn.data_to_send())
                await writer.drain()

            conn.close_connection()
            writer.write(conn.data_to_send())
        except h2.exceptions.H2Error as e:
            raise exceptions.TransportError(f"HTTP/2 protocol error from {request.authority}: {e}") from e
        except OSError as e:
            raise exceptions.TransportError(f"Connection to {request.authority} failed: {e}") from e
        finally:
            await base.close(writer)

        if response is None:
            raise exceptions.TransportError(f"{request.authority} ended the stream without a response.")
        response.content = bytes(content)
        return response

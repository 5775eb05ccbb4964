import h11

from protochain import exceptions
from protochain.http import Headers
from protochain.http import Request
from protochain.http import Response
from protochain.transport import base

# hop-by-hop headers that we set ourselves
_OWN_HEADERS = ("host", "content-length", "transfer-encoding", "connection")


class Http1Transport(base.Transport):
    alpn = "http/1.1"

    async def issue(self, request: Request) -> Response:
        reader, writer = await self.connect(request)
        try:
            conn = h11.Connection(our_role=h11.CLIENT)
            headers = [(b"host", request.authority.encode("idna"))]
            headers += [(k, v) for k, v in request.headers.raw() if k.decode() not in _OWN_HEADERS]
            if request.content or request.method not in ("GET", "HEAD"):
                headers.append((b"content-length", str(len(request.content)).encode()))
            data = conn.send(h11.Request(
                method=request.method,
                target=request.path,
                headers=headers,
            ))
            if request.content:
                data += conn.send(h11.Data(data=request.content))
            data += conn.send(h11.EndOfMessage())
            writer.write(data)
            await writer.drain()

            response: Response | None = None
            content = bytearray()
            while True:
                event = conn.next_event()
                if event is h11.NEED_DATA:
                    conn.receive_data(await reader.read(base.READ_SIZE))
                elif isinstance(event, h11.InformationalResponse):
                    continue
                elif isinstance(event, h11.Response):
                    response = Response(
                        status_code=event.status_code,
                        headers=Headers(event.headers),
                        http_version="HTTP/" + event.http_version.decode(),
                    )
                elif isinstance(event, h11.Data):
                    content += event.data
                elif isinstance(event, h11.EndOfMessage):
                    break
                elif isinstance(event, h11.ConnectionClosed):
                    raise exceptions.TransportError(
                        f"{request.authority} closed the connection before responding."
                    )
        except h11.ProtocolError as e:
            raise exceptions.TransportError(f"HTTP/1 protocol error from {request.authority}: {e}") from e
        except OSError as e:
            raise exceptions.TransportError(f"Connection to {request.authority} failed: {e}") from e
        finally:
            await base.close(writer)

        assert response is not None
        response.content = bytes(content)
        return response

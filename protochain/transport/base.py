import abc
import asyncio
import contextlib
import logging
import ssl
from typing import ClassVar

from protochain import exceptions
from protochain.http import Request
from protochain.http import Response

logger = logging.getLogger(__name__)

READ_SIZE = 65536


class Transport(metaclass=abc.ABCMeta):
    """
    Issues exactly the requests it is given over one protocol, one connection per call.

    A transport holds no state between calls apart from its TLS context,
    which is built for it alone.
    """

    alpn: ClassVar[str | None] = None

    def __init__(self, ssl_context: ssl.SSLContext | None, hop: str = "-"):
        self.ssl_context = ssl_context
        self.hop = hop

    def __repr__(self):
        return f"{type(self).__name__}(tls={self.ssl_context is not None})"

    @abc.abstractmethod
    async def issue(self, request: Request) -> Response:
        """
        Send `request` and return the complete response.

        *Raises:*
         - TransportError, if no well-formed response could be obtained.
        """
        raise NotImplementedError

    async def connect(self, request: Request) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
        if (request.scheme == "https") != (self.ssl_context is not None):
            raise exceptions.TransportError(
                f"{type(self).__name__} cannot issue {request.scheme} requests."
            )
        try:
            reader, writer = await asyncio.open_connection(
                request.host,
                request.port,
                ssl=self.ssl_context,
                server_hostname=request.host if self.ssl_context else None,
            )
        except OSError as e:
            raise exceptions.TransportError(
                f"Cannot connect to {request.authority}: {e}"
            ) from e

        if self.ssl_context is not None and self.alpn is not None:
            ssl_object = writer.get_extra_info("ssl_object")
            selected = ssl_object.selected_alpn_protocol() if ssl_object else None
            if selected != self.alpn and not (selected is None and self.alpn == "http/1.1"):
                await close(writer)
                raise exceptions.TransportError(
                    f"{request.authority} negotiated {selected!r} instead of {self.alpn!r}."
                )
        logger.debug(
            f"connected to {request.authority} via {type(self).__name__}",
            extra={"hop": self.hop},
        )
        return reader, writer


async def close(writer: asyncio.StreamWriter) -> None:
    writer.close()
    with contextlib.suppress(OSError):
        await writer.wait_closed()

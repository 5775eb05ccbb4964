"""
Outbound transports.

`select` is the only way hops obtain a transport: it is a pure function of
the negotiation flag and the trust root, and returns a new transport, with a
new TLS context, on every call.
"""

from protochain import certs
from protochain.net import tls
from protochain.transport.base import Transport
from protochain.transport.http1 import Http1Transport
from protochain.transport.http2 import Http2Transport

__all__ = [
    "Transport",
    "Http1Transport",
    "Http2Transport",
    "select",
    "plain",
]


def select(use_http2: bool, trust_root: certs.TrustRoot | bytes | None, hop: str = "-") -> Transport:
    """
    Returns a TLS transport that negotiates HTTP/2 if `use_http2` is set and HTTP/1.1 otherwise,
    verifying the peer against `trust_root` only.

    *Raises:*
     - ConfigurationError, if the trust root is missing or not valid PEM.
    """
    if not isinstance(trust_root, certs.TrustRoot):
        trust_root = certs.TrustRoot.from_pem(trust_root)
    if use_http2:
        return Http2Transport(tls.create_client_context(trust_root, [tls.ALPN.HTTP2.value]), hop)
    return Http1Transport(tls.create_client_context(trust_root, [tls.ALPN.HTTP1.value]), hop)


def plain(hop: str = "-") -> Transport:
    """
    Returns a cleartext HTTP/1.1 transport, used where a hop listens without TLS.
    """
    return Http1Transport(None, hop)

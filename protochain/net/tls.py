import os
import ssl
from collections.abc import Sequence
from enum import Enum

from protochain import certs
from protochain import exceptions


class ALPN(str, Enum):
    HTTP1 = "http/1.1"
    HTTP2 = "h2"


SERVER_ALPN_PROTOCOLS = (ALPN.HTTP2.value, ALPN.HTTP1.value)

DEFAULT_MIN_VERSION = ssl.TLSVersion.TLSv1_2


KEYLOG_FILENAME: str | None = os.getenv("PROTOCHAIN_SSLKEYLOGFILE") or os.getenv("SSLKEYLOGFILE")


def create_client_context(
    trust_root: certs.TrustRoot,
    alpn_protocols: Sequence[str],
) -> ssl.SSLContext:
    """
    Build a fresh client context that trusts exactly `trust_root`.

    Contexts are never cached or shared, so two calls with different ALPN
    offers cannot influence each other.
    """
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    context.minimum_version = DEFAULT_MIN_VERSION
    try:
        context.load_verify_locations(cadata=trust_root.to_pem().decode("ascii"))
    except ssl.SSLError as e:
        raise exceptions.ConfigurationError(f"Cannot load trust root: {e}") from e
    context.set_alpn_protocols(list(alpn_protocols))
    if KEYLOG_FILENAME:
        context.keylog_filename = KEYLOG_FILENAME
    return context


def create_server_context(
    certfile: str,
    keyfile: str,
    alpn_protocols: Sequence[str] = SERVER_ALPN_PROTOCOLS,
) -> ssl.SSLContext:
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    context.minimum_version = DEFAULT_MIN_VERSION
    try:
        context.load_cert_chain(certfile=certfile, keyfile=keyfile)
    except (OSError, ssl.SSLError) as e:
        raise exceptions.ConfigurationError(
            f"Cannot load TLS certificate ({certfile=}, {keyfile=}): {e}"
        ) from e
    # RFC 7540 9.2.2: HTTP/2 is only permitted with TLS 1.2+ and without compression.
    context.options |= ssl.OP_NO_COMPRESSION
    context.set_alpn_protocols(list(alpn_protocols))
    if KEYLOG_FILENAME:
        context.keylog_filename = KEYLOG_FILENAME
    return context

"""
Assembly of the four endpoints from Options.
"""

import logging
import ssl
import urllib.parse

from protochain import certs
from protochain import transport
from protochain.hops import Hop
from protochain.hops import Role
from protochain.hops import TransportSelector
from protochain.net import tls
from protochain.options import Options
from protochain.server import HopServer

logger = logging.getLogger(__name__)

# Origin and Relay are reached over TLS; Edge and Presenter are plain HTTP/1.1.
TLS_ROLES = (Role.ORIGIN, Role.RELAY)


def make_selector(downstream: str, trust_root: certs.TrustRoot, hop: str) -> TransportSelector:
    if urllib.parse.urlsplit(downstream).scheme == "http":
        return lambda use_http2: transport.plain(hop)
    return lambda use_http2: transport.select(use_http2, trust_root, hop)


def build_hop(role: Role, options: Options, trust_root: certs.TrustRoot) -> Hop:
    downstream = options.downstream(role)
    if downstream is None:
        return Hop(role, timeout=options.timeout)
    hop = Hop(role, downstream, timeout=options.timeout)
    hop.select_transport = make_selector(downstream, trust_root, hop.name)
    return hop


def build_servers(
    options: Options,
    trust_root: certs.TrustRoot | None = None,
    server_context: ssl.SSLContext | None = None,
) -> list[HopServer]:
    """
    Build one HopServer per role, leaves first.

    *Raises:*
     - ConfigurationError, if options or TLS material are invalid.
    """
    options.validate()
    if trust_root is None:
        trust_root = certs.TrustRoot.from_file(options.trust_file)
    if server_context is None:
        server_context = tls.create_server_context(options.certfile, options.keyfile)

    servers = []
    for role in (Role.ORIGIN, Role.RELAY, Role.EDGE, Role.PRESENTER):
        hop = build_hop(role, options, trust_root)
        servers.append(HopServer(
            hop.name,
            hop.handle,
            options.listen_host,
            options.port(role),
            server_context if role in TLS_ROLES else None,
        ))
        logger.debug(f"{hop!r} on port {options.port(role)}", extra={"hop": hop.name})
    return servers

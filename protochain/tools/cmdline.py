import argparse

from protochain import log
from protochain.options import Options


def protochain(opts: Options) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="protochain",
        description="Run an edge, relay, origin and presenter endpoint and report the HTTP version every hop negotiated.",
    )
    parser.add_argument(
        "--version",
        action="store_true",
        help="show version number and exit",
        dest="version",
    )
    parser.add_argument(
        "--generate-certs",
        action="store_true",
        dest="generate_certs",
        help="Write a self-signed certificate and key for localhost to --certfile/--keyfile and exit.",
    )
    parser.add_argument(
        "-q", "--quiet", action="store_true", dest="quiet", help="Quiet."
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        dest="verbose",
        help="Increase log verbosity.",
    )
    parser.add_argument(
        "--verbosity",
        choices=log.LogLevels,
        dest="verbosity",
        help=f"Log verbosity. Default: {opts.verbosity}",
    )

    group = parser.add_argument_group("Listeners")
    group.add_argument("--listen-host", metavar="HOST", dest="listen_host",
                       help=f"Address to bind all endpoints to. Default: {opts.listen_host}")
    group.add_argument("--origin-port", type=int, metavar="PORT", dest="origin_port",
                       help=f"Origin (server) port. Default: {opts.origin_port}")
    group.add_argument("--relay-port", type=int, metavar="PORT", dest="relay_port",
                       help=f"Relay (proxy) port. Default: {opts.relay_port}")
    group.add_argument("--edge-port", type=int, metavar="PORT", dest="edge_port",
                       help=f"Edge (client) port. Default: {opts.edge_port}")
    group.add_argument("--presenter-port", type=int, metavar="PORT", dest="presenter_port",
                       help=f"Presenter (ui) port. Default: {opts.presenter_port}")

    group = parser.add_argument_group("Downstream hops")
    group.add_argument("--relay-upstream", metavar="SPEC", dest="relay_upstream",
                       help="Origin the relay forwards to, e.g. https://localhost:8000")
    group.add_argument("--edge-upstream", metavar="SPEC", dest="edge_upstream",
                       help="Relay the edge calls, e.g. https://localhost:8001")
    group.add_argument("--presenter-upstream", metavar="SPEC", dest="presenter_upstream",
                       help="Edge the presenter calls, e.g. http://localhost:8002")
    group.add_argument("--timeout", type=float, metavar="SECONDS", dest="timeout",
                       help=f"Deadline for each downstream call. Default: {opts.timeout}")

    group = parser.add_argument_group("TLS")
    group.add_argument("--certfile", metavar="PATH", dest="certfile",
                       help=f"PEM certificate served by origin and relay. Default: {opts.certfile}")
    group.add_argument("--keyfile", metavar="PATH", dest="keyfile",
                       help=f"PEM private key for --certfile. Default: {opts.keyfile}")
    group.add_argument("--cafile", metavar="PATH", dest="cafile",
                       help="The only certificate authority hops trust. Default: --certfile")
    return parser

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from collections.abc import Sequence

from protochain import certs
from protochain import chain
from protochain import exceptions
from protochain import log
from protochain import version
from protochain.options import Options
from protochain.supervisor import Supervisor
from protochain.tools import cmdline

logger = logging.getLogger(__name__)


def process_options(parser: argparse.ArgumentParser, opts: Options, args: argparse.Namespace) -> None:
    if args.quiet:
        args.verbosity = "error"
    if args.verbose:
        args.verbosity = "debug"

    adict = {
        key: val
        for key, val in vars(args).items()
        if key in Options.__dataclass_fields__ and val is not None
    }
    opts.update(**adict)
    opts.validate()


def generate_certs(opts: Options) -> None:
    private_key, cert = certs.create_self_signed("localhost", ["localhost", "127.0.0.1", "::1"])
    certs.write_pem_pair(private_key, cert, opts.certfile, opts.keyfile)
    print(f"Wrote {opts.certfile} and {opts.keyfile}.")


def run(arguments: Sequence[str] | None = None) -> int:
    opts = Options()
    parser = cmdline.protochain(opts)
    args = parser.parse_args(arguments)

    if args.version:
        print(version.PROTOCHAIN)
        return 0

    try:
        process_options(parser, opts, args)
        if args.generate_certs:
            generate_certs(opts)
            return 0
        log.setup_logging(opts.verbosity)
        servers = chain.build_servers(opts)
    except exceptions.ConfigurationError as e:
        print(f"{parser.prog}: {e}", file=sys.stderr)
        return 1

    async def main() -> None:
        supervisor = Supervisor(servers)
        loop = asyncio.get_running_loop()

        def _shutdown(*_):
            loop.call_soon_threadsafe(supervisor.shutdown)

        # loop.add_signal_handler is not available on Windows' Proactorloop.
        signal.signal(signal.SIGINT, _shutdown)
        signal.signal(signal.SIGTERM, _shutdown)
        await supervisor.run()

    try:
        asyncio.run(main())
    except exceptions.ConfigurationError as e:
        print(f"{parser.prog}: {e}", file=sys.stderr)
        return 1
    except exceptions.ListenerExited as e:
        logger.error(str(e))
        return 1
    return 0


def protochain(args=None) -> int | None:  # pragma: no cover
    return run(args)

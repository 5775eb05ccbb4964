import asyncio
import logging
from collections.abc import Sequence

from protochain import exceptions
from protochain.server import HopServer

logger = logging.getLogger(__name__)


class Supervisor:
    """
    Runs independent listeners side by side.

    Listeners share nothing but the trust root. If any of them exits, the
    others are stopped as well and the failure is raised from `run`.
    """

    def __init__(self, servers: Sequence[HopServer]):
        self.servers = list(servers)
        self.should_exit = asyncio.Event()

    def __repr__(self):
        return f"Supervisor({', '.join(s.name for s in self.servers)})"

    def shutdown(self) -> None:
        """
        Stop all listeners gracefully; `run` returns without raising.
        """
        self.should_exit.set()

    async def run(self) -> None:
        try:
            for server in self.servers:
                await server.start()
        except OSError as e:
            await self.stop()
            raise exceptions.ConfigurationError(f"Cannot start listener: {e}") from e

        tasks = {
            asyncio.create_task(server.serve_forever(), name=server.name): server
            for server in self.servers
        }
        exit_waiter = asyncio.create_task(self.should_exit.wait(), name="shutdown")
        try:
            done, _ = await asyncio.wait([*tasks, exit_waiter], return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (*tasks, exit_waiter):
                task.cancel()
            await asyncio.gather(*tasks, exit_waiter, return_exceptions=True)
            await self.stop()

        if exit_waiter in done:
            logger.info("Shutting down.")
            return
        for task in done:
            server = tasks[task]
            if not task.cancelled() and (exc := task.exception()):
                raise exceptions.ListenerExited(f"{server.name} crashed: {exc!r}") from exc
            raise exceptions.ListenerExited(f"{server.name} stopped unexpectedly.")

    async def stop(self) -> None:
        for server in self.servers:
            await server.stop()

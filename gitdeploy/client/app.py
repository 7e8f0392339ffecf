"""Runs every configured client side by side."""

import asyncio

from loguru import logger

from gitdeploy.client.client import Client
from gitdeploy.config.schema import Config


class App:
    """
    Owns one session per enabled client.

    Sessions are independent: a client that fails to provision or set up is
    recorded in ``failures`` and the others keep running.
    """

    def __init__(self, config: Config):
        self.config = config
        self.clients: list[Client] = []
        self.failures: dict[str, Exception] = {}
        self._shutdown = asyncio.Event()
        self._tasks: list[asyncio.Task] = []

        for idx, client_config in enumerate(config.clients):
            name = client_config.name or f"client {idx}"
            if not client_config.enabled:
                logger.info(f"{name}: disabled in config")
                continue
            try:
                self.clients.append(Client(client_config, name=name))
            except Exception as e:
                logger.error(f"{name}: cannot provision client: {e}")
                self.failures[name] = e

    @property
    def shutdown(self) -> asyncio.Event:
        return self._shutdown

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    async def start(self) -> None:
        """Start one task per client."""
        logger.info(f"Starting {len(self.clients)} client(s)")
        for client in self.clients:
            task = asyncio.create_task(self._run_client(client), name=f"gitdeploy:{client.name}")
            self._tasks.append(task)

    async def _run_client(self, client: Client) -> None:
        try:
            await client.start(self._shutdown)
        except Exception as e:
            logger.error(f"{client.name}: {e}")
            self.failures[client.name] = e

    async def wait(self) -> None:
        """Wait until every client session has ended."""
        await asyncio.gather(*self._tasks)

    async def stop(self) -> None:
        """Signal shutdown and wait for every session to exit."""
        self._shutdown.set()
        await self.wait()
        logger.info("Stopped all clients")

"""Interval based trigger service."""

import asyncio

from loguru import logger

from gitdeploy.errors import OperationCancelledError
from gitdeploy.services.base import Service, TriggerEvent, TriggerStream

DEFAULT_INTERVAL = 3600.0
MIN_INTERVAL = 5.0


class PollService(Service):
    """Triggers once on start and then every ``interval`` seconds."""

    name = "poll"

    def __init__(self, interval: float = DEFAULT_INTERVAL):
        super().__init__()
        if interval <= 0:
            raise ValueError(f"cannot run poll service for non-positive interval: {interval}")
        self.interval = interval

    async def run(self, shutdown: asyncio.Event, stream: TriggerStream) -> None:
        loop = asyncio.get_running_loop()

        # Update once when the service starts
        await stream.emit(TriggerEvent())
        next_tick = loop.time() + self.interval

        stopped = asyncio.ensure_future(shutdown.wait())
        try:
            while not shutdown.is_set():
                timeout = max(0.0, next_tick - loop.time())
                done, _ = await asyncio.wait({stopped}, timeout=timeout)
                if done:
                    break

                await stream.emit(TriggerEvent())
                # Ticks missed while the consumer was busy are dropped
                while next_tick <= loop.time():
                    next_tick += self.interval
        finally:
            stopped.cancel()

        logger.debug("Poll service stopping")
        await stream.emit(TriggerEvent(error=OperationCancelledError("poll service stopped")))

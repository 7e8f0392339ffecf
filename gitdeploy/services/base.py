"""Trigger service interface."""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum

from loguru import logger

from gitdeploy.errors import ServiceClosedError
from gitdeploy.repository.reference import Reference, branch


@dataclass
class TriggerEvent:
    """
    A request to synchronize now.

    ``error`` carries the service's own failure (poll cancellation, rejected
    webhook, listener error). The consumer decides whether to update anyway.
    """
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class TriggerStream:
    """
    Single-producer, single-consumer stream of trigger events.

    Iterate with ``async for``; iteration ends once the stream is closed
    and buffered events have been consumed. Closing never waits for the
    consumer.
    """

    def __init__(self, maxsize: int = 1):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._closed = asyncio.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    async def emit(self, event: TriggerEvent) -> None:
        if self.closed:
            raise ServiceClosedError("cannot emit on a closed trigger stream")
        await self._queue.put(event)

    async def close(self) -> None:
        """Close the stream. Closing twice is a no-op."""
        self._closed.set()

    def __aiter__(self) -> "TriggerStream":
        return self

    async def __anext__(self) -> TriggerEvent:
        if not self._queue.empty():
            return self._queue.get_nowait()
        if self.closed:
            raise StopAsyncIteration

        getter = asyncio.ensure_future(self._queue.get())
        closer = asyncio.ensure_future(self._closed.wait())
        try:
            await asyncio.wait({getter, closer}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (getter, closer):
                if not task.done():
                    task.cancel()

        if getter.done() and not getter.cancelled():
            return getter.result()
        if not self._queue.empty():
            return self._queue.get_nowait()
        raise StopAsyncIteration


class ServiceState(str, Enum):
    CREATED = "created"
    STARTED = "started"
    CLOSED = "closed"


class Service(ABC):
    """
    Something that runs for the whole session and says when to update.

    ``start`` may be called once. The stream closes when ``shutdown`` is set
    or the service fails for good::

        async for event in service.start(shutdown):
            if event.error:
                ...
            ...
    """

    name: str = "service"

    def __init__(self):
        self.state = ServiceState.CREATED
        self.reference: Reference = branch()
        self._task: asyncio.Task | None = None

    def configure_repo(self, reference: Reference) -> None:
        """Tell the service which reference the session tracks."""
        self.reference = reference

    def start(self, shutdown: asyncio.Event) -> TriggerStream:
        if self.state is not ServiceState.CREATED:
            raise RuntimeError(f"{self.name} service already started")

        self.state = ServiceState.STARTED
        stream = TriggerStream()
        self._task = asyncio.create_task(self._produce(shutdown, stream))
        return stream

    async def aclose(self) -> None:
        """Stop producing if the consumer abandoned the stream."""
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                # Only the producer's cancellation is expected here
                if asyncio.current_task().cancelling():
                    raise
        self.state = ServiceState.CLOSED

    async def _produce(self, shutdown: asyncio.Event, stream: TriggerStream) -> None:
        try:
            await self.run(shutdown, stream)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"{self.name} service failed: {e}")
            if not stream.closed:
                await stream.emit(TriggerEvent(error=e))
        finally:
            self.state = ServiceState.CLOSED
            await stream.close()

    @abstractmethod
    async def run(self, shutdown: asyncio.Event, stream: TriggerStream) -> None:
        """Emit events on ``stream`` until ``shutdown`` is set."""
        pass

"""Webhook endpoint for a host aiohttp application."""

import asyncio

from aiohttp import web
from loguru import logger

from gitdeploy.client.client import Client
from gitdeploy.config.schema import ClientConfig
from gitdeploy.errors import OperationCancelledError, UpdateError, WebhookRejectedError
from gitdeploy.services import WebhookService
from gitdeploy.services.webhook.hooks import HookRequest


class WebhookHandler:
    """
    Serves a client's webhook from the host's routing instead of a listener.

    The repository is set up in the background; until that succeeds every
    request is answered with 404. Accepted requests update the repository
    and run the commands in the background, one cycle at a time.
    """

    def __init__(self, config: ClientConfig, shutdown: asyncio.Event | None = None):
        if config.service.type != "webhook":
            raise ValueError(f"service not of type webhook; got {config.service.type}")

        self.client = Client(config)
        self.shutdown = shutdown or asyncio.Event()
        self._setup_task: asyncio.Task | None = None
        self._cycles: set[asyncio.Task] = set()
        self._cycle_lock = asyncio.Lock()

    @property
    def service(self) -> WebhookService:
        return self.client.service

    @property
    def ready(self) -> bool:
        return self.client.ready

    def provision(self) -> asyncio.Task:
        """Set the repository up in the background."""
        if self._setup_task is None:
            self._setup_task = asyncio.create_task(self._setup())
        return self._setup_task

    def register(self, app: web.Application, path: str | None = None) -> None:
        app.router.add_route("*", path or self.service.path or "/", self.handle)

    async def _setup(self) -> None:
        try:
            await self.client.setup()
        except Exception as e:
            self.client.log.error(f"Repository not set up: {e}")

    async def handle(self, request: web.Request) -> web.Response:
        if not self.ready:
            raise web.HTTPNotFound(text="page not found")

        hook_request = HookRequest(
            method=request.method,
            body=await request.read(),
            headers=dict(request.headers),
        )
        try:
            self.service.validate(hook_request)
        except WebhookRejectedError as e:
            logger.info(f"Webhook request rejected: {e.reason}")
            return web.Response(status=e.status, text=e.reason)

        task = asyncio.create_task(self._cycle())
        self._cycles.add(task)
        task.add_done_callback(self._cycles.discard)
        return web.Response(status=200, text="ok")

    async def _cycle(self) -> None:
        async with self._cycle_lock:
            if self.shutdown.is_set():
                return
            try:
                await self.client.update()
                await self.client.run_commands(self.shutdown)
            except UpdateError as e:
                self.client.log.warning(str(e))
            except OperationCancelledError:
                self.client.log.debug("Commands interrupted by shutdown")

    async def wait_idle(self) -> None:
        """Wait for in-flight update cycles."""
        if self._cycles:
            await asyncio.gather(*list(self._cycles), return_exceptions=True)

    async def close(self) -> None:
        """Stop in-flight work. Safe to call from an aiohttp ``on_cleanup`` hook."""
        self.shutdown.set()
        await self.wait_idle()
        if self._setup_task and not self._setup_task.done():
            self._setup_task.cancel()
            try:
                await self._setup_task
            except asyncio.CancelledError:
                pass
        await self.client.commander.aclose()

"""Webhook based trigger service."""

import asyncio

from aiohttp import web
from loguru import logger

from gitdeploy.errors import OperationCancelledError, WebhookRejectedError
from gitdeploy.services.base import Service, TriggerEvent, TriggerStream
from gitdeploy.services.webhook.hooks import Hook, HookConf, HookRequest, create_hook, validate_request

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8090
DEFAULT_SHUTDOWN_GRACE = 15.0


class WebhookService(Service):
    """
    Triggers an update for every webhook request the hook accepts.

    Requests reach the service either through its own listener, started by
    ``start()``, or through ``handle()`` mounted on a host application.
    Rejected requests are still emitted, with the rejection as the event's
    error.
    """

    name = "webhook"

    def __init__(
        self,
        secret: str = "",
        hook: Hook | str = "generic",
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_PORT,
        path: str = "",
        shutdown_grace: float = DEFAULT_SHUTDOWN_GRACE,
    ):
        super().__init__()
        if path and not path.startswith("/"):
            raise ValueError(f"path should be of the format '/path'; got {path!r}")

        self.secret = secret
        self.hook = create_hook(hook) if isinstance(hook, str) else hook
        self.host = host
        self.port = port
        self.path = path
        self.shutdown_grace = shutdown_grace
        self.listening = asyncio.Event()

        self._stream: TriggerStream | None = None
        self._runner: web.AppRunner | None = None

    @property
    def conf(self) -> HookConf:
        return HookConf(secret=self.secret, reference=self.reference)

    @property
    def bound_port(self) -> int | None:
        """Port the listener actually bound, useful with ``port=0``."""
        if self._runner is None or not self._runner.addresses:
            return None
        return self._runner.addresses[0][1]

    def validate(self, request: HookRequest) -> None:
        """
        Check the request without emitting anything.

        Raises:
            WebhookRejectedError: If the request must not trigger an update.
        """
        validate_request(request)
        self.hook.handle(request, self.conf)

    async def dispatch(self, request: HookRequest) -> tuple[int, str]:
        """Validate the request and emit one event for it. Returns status and reason."""
        try:
            self.validate(request)
        except WebhookRejectedError as e:
            logger.info(f"Webhook request rejected: {e.reason}")
            event = TriggerEvent(error=e)
            status, reason = e.status, e.reason
        else:
            event = TriggerEvent()
            status, reason = 200, "ok"

        if self._stream is not None and not self._stream.closed:
            await self._stream.emit(event)
        return status, reason

    async def handle(self, request: web.Request) -> web.Response:
        """aiohttp handler for webhook requests."""
        hook_request = HookRequest(
            method=request.method,
            body=await request.read(),
            headers=dict(request.headers),
        )
        status, reason = await self.dispatch(hook_request)
        return web.Response(status=status, text=reason)

    def create_app(self) -> web.Application:
        app = web.Application()
        app.router.add_route("*", self.path or "/{tail:.*}", self.handle)
        return app

    async def run(self, shutdown: asyncio.Event, stream: TriggerStream) -> None:
        self._stream = stream
        # Open connections get shutdown_grace seconds before being closed
        runner = web.AppRunner(self.create_app(), shutdown_timeout=self.shutdown_grace)
        await runner.setup()
        self._runner = runner
        try:
            site = web.TCPSite(runner, self.host, self.port)
            await site.start()
            self.listening.set()
            logger.info(f"Webhook service listening on {self.host}:{self.bound_port}{self.path or '/'}")
            await shutdown.wait()
        finally:
            logger.debug("Webhook service shutting down")
            await runner.cleanup()
            self.listening.clear()

        await stream.emit(TriggerEvent(error=OperationCancelledError("webhook service stopped")))

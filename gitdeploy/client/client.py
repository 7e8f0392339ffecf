"""A single managed repository session."""

import asyncio

from loguru import logger

from gitdeploy.commander import Command, Commander
from gitdeploy.config.schema import ClientConfig
from gitdeploy.errors import (
    CommandError,
    NotAGitDirectoryError,
    OperationCancelledError,
    SetupError,
    UpdateError,
)
from gitdeploy.repository import Repository, UpdateResult
from gitdeploy.services import Service, TriggerEvent, create_service


class Client:
    """
    Keeps one repository in sync and redeploys it.

    Binds a repository, the trigger service that says when to update it and
    the commands to run after every update. Updates never overlap: the
    working tree has a single writer.
    """

    def __init__(
        self,
        config: ClientConfig,
        name: str | None = None,
        service: Service | None = None,
    ):
        self.config = config
        self.name = name or config.name or config.repo.path
        self.repo = Repository.from_config(config.repo)
        self.service = service or create_service(config.service)
        self.service.configure_repo(self.repo.reference)
        self.log = logger.bind(client=self.name, path=str(self.repo.path))

        self.commander = Commander.from_config(
            config.commands_after,
            cwd=self.repo.path,
            on_start=self._on_command_start,
            on_error=self._on_command_error,
        )

        self.ready = False
        self._lock = asyncio.Lock()

    @property
    def path(self) -> str:
        return str(self.repo.path)

    def _on_command_start(self, command: Command) -> None:
        self.log.info(f"Running command: {command}")

    def _on_command_error(self, error: CommandError) -> None:
        self.log.warning(f"Cannot run command: {error}")

    # ========== Public API ==========

    async def setup(self) -> None:
        """
        Clone or open the repository. Marks the client ready on success.

        Raises:
            NotAGitDirectoryError: If the path holds unrelated files.
            SetupError: If cloning or opening failed.
        """
        self.log.info(f"Setting up repository {self.repo.url} ({self.repo.reference})")
        async with self._lock:
            try:
                await self.repo.setup()
            except NotAGitDirectoryError:
                raise
            except Exception as e:
                raise SetupError(f"cannot setup repository {self.path}: {e}") from e
        self.ready = True

    async def update(self) -> UpdateResult:
        """
        Synchronize the working copy once.

        Raises:
            UpdateError: If fetching, pulling or checkout failed.
        """
        async with self._lock:
            try:
                result = await self.repo.update()
            except Exception as e:
                raise UpdateError(f"cannot update repository {self.path}: {e}") from e

        if result.changed:
            old = result.old_commit[:8] if result.old_commit else "none"
            new = result.new_commit[:8] if result.new_commit else "none"
            self.log.info(f"Repository updated {old} → {new}")
        else:
            self.log.debug("Repository already up to date")
        return result

    async def run_commands(self, shutdown: asyncio.Event | None = None) -> None:
        """Run the post-update commands once."""
        await self.commander.run(shutdown)

    async def start(self, shutdown: asyncio.Event) -> None:
        """
        Run the session until ``shutdown`` is set.

        Setup failures end the session by raising. Failed updates and
        commands are logged and the next trigger retries.
        """
        await self.setup()

        try:
            if self.config.run_commands_on_setup:
                # Most likely the commands that build or start the site
                await self.run_commands(shutdown)

            self.log.info(f"Starting {self.service.name} service")
            async for event in self.service.start(shutdown):
                if shutdown.is_set():
                    # Drain until the service closes its stream
                    continue
                await self._handle_event(event, shutdown)
        except OperationCancelledError:
            self.log.debug("Commands interrupted by shutdown")
        finally:
            await self.service.aclose()
            await self.commander.aclose()
            self.log.info("Session stopped")

    async def _handle_event(self, event: TriggerEvent, shutdown: asyncio.Event) -> None:
        if event.error is not None:
            self.log.warning(f"Error from {self.service.name} service: {event.error}")
            if not self.config.update_on_trigger_error:
                return

        self.log.info("Updating repository")
        try:
            await self.update()
        except UpdateError as e:
            self.log.warning(str(e))
            return

        try:
            await self.run_commands(shutdown)
        except OperationCancelledError:
            self.log.debug("Commands interrupted by shutdown")

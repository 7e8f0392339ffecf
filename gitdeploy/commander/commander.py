"""Sequential runner for post-update commands."""

from __future__ import annotations

import asyncio
import os
import shlex
import signal
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Iterable, Sequence

from loguru import logger

from gitdeploy.errors import CommandError, OperationCancelledError

if TYPE_CHECKING:
    from gitdeploy.config.schema import CommandConfig

DEFAULT_KILL_TIMEOUT = 5.0
_SIGKILL = getattr(signal, "SIGKILL", signal.SIGTERM)


@dataclass(frozen=True)
class Command:
    """A command line. Background commands are started but not waited on."""
    args: tuple[str, ...]
    background: bool = False

    @classmethod
    def from_args(cls, args: Sequence[str] | str, background: bool = False) -> Command:
        if isinstance(args, str):
            args = shlex.split(args)
        return cls(args=tuple(args), background=background)

    @property
    def name(self) -> str:
        return self.args[0] if self.args else ""

    def __str__(self) -> str:
        return shlex.join(self.args)


class Commander:
    """
    Runs commands strictly in order, best effort.

    A failing command is reported through ``on_error`` and the next one still
    runs. Every command gets its own process group so that stopping it also
    stops whatever it spawned.
    """

    def __init__(
        self,
        commands: Iterable[Command] = (),
        cwd: str | Path | None = None,
        on_start: Callable[[Command], None] | None = None,
        on_error: Callable[[CommandError], None] | None = None,
        kill_timeout: float = DEFAULT_KILL_TIMEOUT,
    ):
        self.commands = [c for c in commands if c.args]
        self.cwd = cwd
        self.on_start = on_start
        self.on_error = on_error
        self.kill_timeout = kill_timeout
        self._background: set[asyncio.Task] = set()

    @classmethod
    def from_config(cls, configs: Iterable[CommandConfig], **kwargs) -> Commander:
        commands = [Command.from_args(c.command, background=c.async_) for c in configs]
        return cls(commands, **kwargs)

    def __len__(self) -> int:
        return len(self.commands)

    async def run(self, shutdown: asyncio.Event | None = None) -> None:
        """
        Run every command once.

        Args:
            shutdown: Once set, the running command's process group is
                terminated and no further command starts.

        Raises:
            OperationCancelledError: If ``shutdown`` was set before or while
                running a command.
        """
        for command in self.commands:
            if shutdown is not None and shutdown.is_set():
                raise OperationCancelledError("shutdown requested, not running remaining commands")

            if self.on_start:
                self.on_start(command)

            try:
                await self._execute(command, shutdown)
            except CommandError as e:
                if self.on_error:
                    self.on_error(e)
                else:
                    logger.warning(f"Cannot run command: {e}")

    async def aclose(self) -> None:
        """Stop background commands that are still running."""
        tasks = list(self._background)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    @property
    def background_count(self) -> int:
        return len(self._background)

    async def _execute(self, command: Command, shutdown: asyncio.Event | None) -> None:
        try:
            proc = await asyncio.create_subprocess_exec(
                *command.args,
                cwd=self.cwd,
                stdin=asyncio.subprocess.DEVNULL,
                start_new_session=True,
            )
        except OSError as e:
            raise CommandError(str(command), f"cannot start: {e}") from e

        if command.background:
            task = asyncio.create_task(self._supervise(proc, command, shutdown))
            self._background.add(task)
            task.add_done_callback(self._background.discard)
            return

        try:
            exited = await self._wait_or_shutdown(proc, shutdown)
        except asyncio.CancelledError:
            await self._terminate(proc)
            raise

        if not exited:
            await self._terminate(proc)
            raise OperationCancelledError(f"command '{command}' cancelled by shutdown")

        if proc.returncode != 0:
            raise CommandError(
                str(command), f"exited with status {proc.returncode}", proc.returncode
            )

    async def _supervise(
        self, proc: asyncio.subprocess.Process, command: Command, shutdown: asyncio.Event | None
    ) -> None:
        try:
            exited = await self._wait_or_shutdown(proc, shutdown)
        except asyncio.CancelledError:
            await self._terminate(proc)
            raise

        if not exited:
            logger.info(f"Stopping background command '{command}'")
            await self._terminate(proc)
        elif proc.returncode != 0:
            logger.warning(f"Background command '{command}' exited with status {proc.returncode}")

    async def _wait_or_shutdown(
        self, proc: asyncio.subprocess.Process, shutdown: asyncio.Event | None
    ) -> bool:
        """Wait for the process. Returns False if shutdown came first."""
        if shutdown is None:
            await proc.wait()
            return True

        exited = asyncio.create_task(proc.wait())
        stopped = asyncio.create_task(shutdown.wait())
        try:
            await asyncio.wait({exited, stopped}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (exited, stopped):
                if not task.done():
                    task.cancel()
        return exited.done() and not exited.cancelled()

    async def _terminate(self, proc: asyncio.subprocess.Process) -> None:
        """
        Terminate the process group, escalating to SIGKILL after kill_timeout.

        The leader exiting is not enough: descendants that ignore SIGTERM
        stay in the group until they are killed.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.kill_timeout

        _signal_group(proc, signal.SIGTERM)
        try:
            await asyncio.wait_for(proc.wait(), timeout=self.kill_timeout)
        except asyncio.TimeoutError:
            pass

        while _group_alive(proc) and loop.time() < deadline:
            await asyncio.sleep(0.05)

        _signal_group(proc, _SIGKILL)
        await proc.wait()


def _group_alive(proc: asyncio.subprocess.Process) -> bool:
    if os.name != "posix":
        return proc.returncode is None
    try:
        os.killpg(proc.pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


def _signal_group(proc: asyncio.subprocess.Process, sig: int) -> None:
    try:
        if os.name == "posix":
            os.killpg(proc.pid, sig)
        elif sig == signal.SIGTERM:
            proc.terminate()
        else:
            proc.kill()
    except ProcessLookupError:
        pass

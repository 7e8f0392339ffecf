"""Tests for client sessions, the app and the mounted webhook handler."""

import asyncio
from pathlib import Path

import pytest
from aiohttp import web
from aiohttp.test_utils import TestClient as HTTPClient
from aiohttp.test_utils import TestServer as HTTPServer
from git import Repo

from gitdeploy.client import App, Client, WebhookHandler
from gitdeploy.config.schema import (
    ClientConfig,
    CommandConfig,
    Config,
    RepositoryConfig,
    WebhookServiceConfig,
)
from gitdeploy.errors import NotAGitDirectoryError, OperationCancelledError, UpdateError
from gitdeploy.services import PollService, Service, TriggerEvent, TriggerStream


def client_config(url: str, path: Path, **kwargs) -> ClientConfig:
    """Client config for a local upstream, which the URL validator would refuse."""
    repo = RepositoryConfig.model_construct(url=url, path=str(path), branch=kwargs.pop("branch", ""))
    return ClientConfig(repo=repo, **kwargs)


def count_runs(path: Path) -> int:
    runs = path / "runs.log"
    return len(runs.read_text().splitlines()) if runs.exists() else 0


async def wait_for(predicate, timeout: float = 10.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.05)


RECORD_RUN = CommandConfig(command=["sh", "-c", "echo run >> runs.log"])


class ScriptedService(Service):
    """Emits the given events, then waits for shutdown."""

    name = "scripted"

    def __init__(self, events: list[TriggerEvent]):
        super().__init__()
        self.events = events

    async def run(self, shutdown: asyncio.Event, stream: TriggerStream) -> None:
        for event in self.events:
            await stream.emit(event)
        await shutdown.wait()


class TestClient:
    """Test Client."""

    @pytest.mark.asyncio
    async def test_setup_and_update(self, upstream, checkout_path: Path):
        """Test setup then update follow the upstream branch."""
        client = Client(client_config(upstream.url, checkout_path))
        assert not client.ready

        await client.setup()
        assert client.ready

        new = upstream.commit()
        result = await client.update()
        assert result.new_commit == new

    @pytest.mark.asyncio
    async def test_update_failure_wrapped(self, upstream, checkout_path: Path):
        """Test update errors are reported as UpdateError."""
        client = Client(client_config(upstream.url, checkout_path))
        with pytest.raises(UpdateError):
            await client.update()

    @pytest.mark.asyncio
    async def test_setup_rejects_foreign_directory(self, upstream, checkout_path: Path):
        """Test setup refuses a directory with unrelated files."""
        checkout_path.mkdir()
        (checkout_path / "data").write_text("x")
        client = Client(client_config(upstream.url, checkout_path))

        with pytest.raises(NotAGitDirectoryError):
            await client.start(asyncio.Event())
        assert not client.ready

    @pytest.mark.asyncio
    async def test_session_runs_and_updates(self, upstream, checkout_path: Path):
        """Test a session runs commands on setup and after every trigger."""
        config = client_config(upstream.url, checkout_path, commands_after=[RECORD_RUN])
        client = Client(config, service=PollService(interval=0.2))
        shutdown = asyncio.Event()
        session = asyncio.create_task(client.start(shutdown))

        # Once after setup, once for the immediate poll
        await wait_for(lambda: count_runs(checkout_path) >= 2)

        new = upstream.commit("index.html", "<h1>v2</h1>")
        await wait_for(lambda: Repo(checkout_path).head.commit.hexsha == new)

        shutdown.set()
        await asyncio.wait_for(session, timeout=10)
        assert client.service.state.value == "closed"

    @pytest.mark.asyncio
    async def test_no_commands_on_setup(self, upstream, checkout_path: Path):
        """Test run_commands_on_setup can be disabled."""
        config = client_config(
            upstream.url, checkout_path, commands_after=[RECORD_RUN], run_commands_on_setup=False
        )
        client = Client(config, service=ScriptedService([]))
        shutdown = asyncio.Event()
        session = asyncio.create_task(client.start(shutdown))

        await wait_for(lambda: client.ready)
        await asyncio.sleep(0.3)
        assert count_runs(checkout_path) == 0

        shutdown.set()
        await asyncio.wait_for(session, timeout=10)

    @pytest.mark.asyncio
    async def test_error_events_skipped(self, upstream, checkout_path: Path):
        """Test error events do not trigger an update by default."""
        config = client_config(
            upstream.url, checkout_path, commands_after=[RECORD_RUN], run_commands_on_setup=False
        )
        service = ScriptedService([TriggerEvent(error=RuntimeError("flaky")), TriggerEvent()])
        client = Client(config, service=service)
        shutdown = asyncio.Event()
        session = asyncio.create_task(client.start(shutdown))

        await wait_for(lambda: count_runs(checkout_path) >= 1)
        await asyncio.sleep(0.3)
        assert count_runs(checkout_path) == 1

        shutdown.set()
        await asyncio.wait_for(session, timeout=10)

    @pytest.mark.asyncio
    async def test_error_events_update_when_enabled(self, upstream, checkout_path: Path):
        """Test update_on_trigger_error makes error events trigger updates."""
        config = client_config(
            upstream.url,
            checkout_path,
            commands_after=[RECORD_RUN],
            run_commands_on_setup=False,
            update_on_trigger_error=True,
        )
        service = ScriptedService([TriggerEvent(error=RuntimeError("flaky")), TriggerEvent()])
        client = Client(config, service=service)
        shutdown = asyncio.Event()
        session = asyncio.create_task(client.start(shutdown))

        await wait_for(lambda: count_runs(checkout_path) >= 2)

        shutdown.set()
        await asyncio.wait_for(session, timeout=10)

    @pytest.mark.asyncio
    async def test_shutdown_interrupts_commands(self, upstream, checkout_path: Path):
        """Test shutdown stops a long running command and ends the session."""
        config = client_config(
            upstream.url, checkout_path, commands_after=[CommandConfig(command=["sleep", "30"])]
        )
        client = Client(config, service=ScriptedService([]))
        client.commander.kill_timeout = 1
        shutdown = asyncio.Event()
        session = asyncio.create_task(client.start(shutdown))

        await wait_for(lambda: client.ready)
        await asyncio.sleep(0.3)
        shutdown.set()
        await asyncio.wait_for(session, timeout=5)

    @pytest.mark.asyncio
    async def test_run_commands_after_shutdown(self, upstream, checkout_path: Path):
        """Test commands do not start once shutdown is set."""
        client = Client(client_config(upstream.url, checkout_path, commands_after=[RECORD_RUN]))
        await client.setup()
        shutdown = asyncio.Event()
        shutdown.set()

        with pytest.raises(OperationCancelledError):
            await client.run_commands(shutdown)


class TestApp:
    """Test App."""

    @pytest.mark.asyncio
    async def test_clients_fail_independently(self, upstream, tmp_path: Path):
        """Test one broken client does not take the others down."""
        broken = tmp_path / "broken"
        broken.mkdir()
        (broken / "data").write_text("x")

        config = Config(clients=[
            client_config(upstream.url, tmp_path / "good", name="good", commands_after=[RECORD_RUN]),
            client_config(upstream.url, broken, name="broken"),
            client_config(upstream.url, tmp_path / "bad-ref", name="bad-ref", branch="{git.ref.tag}"),
            client_config(upstream.url, tmp_path / "off", name="off", enabled=False),
        ])
        app = App(config)

        assert [c.name for c in app.clients] == ["good", "broken"]
        assert "bad-ref" in app.failures

        await app.start()
        await wait_for(lambda: "broken" in app.failures)
        await wait_for(lambda: count_runs(tmp_path / "good") >= 1)
        assert app.running

        await asyncio.wait_for(app.stop(), timeout=10)
        assert not app.running
        assert isinstance(app.failures["broken"], NotAGitDirectoryError)
        assert not (tmp_path / "off").exists()

    @pytest.mark.asyncio
    async def test_default_names(self, upstream, tmp_path: Path):
        """Test unnamed clients are named by position."""
        config = Config(clients=[
            client_config(upstream.url, tmp_path / "a"),
            client_config(upstream.url, tmp_path / "b"),
        ])
        app = App(config)
        assert [c.name for c in app.clients] == ["client 0", "client 1"]


class TestWebhookHandler:
    """Test WebhookHandler mounted on a host application."""

    def test_requires_webhook_service(self, upstream, checkout_path: Path):
        """Test only webhook clients can be mounted."""
        with pytest.raises(ValueError):
            WebhookHandler(client_config(upstream.url, checkout_path))

    @pytest.mark.asyncio
    async def test_not_found_until_ready(self, upstream, checkout_path: Path):
        """Test requests get 404 before setup and trigger updates after."""
        config = client_config(
            upstream.url,
            checkout_path,
            commands_after=[RECORD_RUN],
            service=WebhookServiceConfig(path="/hook"),
        )
        handler = WebhookHandler(config)
        app = web.Application()
        handler.register(app)

        async with HTTPClient(HTTPServer(app)) as http:
            resp = await http.post("/hook", json={"ref": "refs/heads/master"})
            assert resp.status == 404

            await handler.provision()
            assert handler.ready

            resp = await http.post("/hook", json={"ref": "refs/heads/develop"})
            assert resp.status == 400

            new = upstream.commit()
            resp = await http.post("/hook", json={"ref": "refs/heads/master"})
            assert resp.status == 200
            assert await resp.text() == "ok"

            await handler.wait_idle()
            assert Repo(checkout_path).head.commit.hexsha == new
            assert count_runs(checkout_path) == 1

        await handler.close()

"""CLI commands for gitdeploy."""

import asyncio
import signal
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from gitdeploy import __logo__, __version__

app = typer.Typer(
    name="gitdeploy",
    help=f"{__logo__} gitdeploy - Keep git checkouts deployed",
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} gitdeploy v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
):
    """gitdeploy - Keep git checkouts deployed."""
    pass


def _load(config_path: Path | None):
    from gitdeploy.config.loader import load_config
    from gitdeploy.errors import ConfigError

    try:
        return load_config(config_path)
    except ConfigError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)


# ============================================================================
# Onboard / Setup
# ============================================================================


@app.command()
def onboard(
    config_path: Path = typer.Option(None, "--config", "-c", help="Config file to create"),
):
    """Create a configuration file with an example client."""
    from gitdeploy.config.loader import get_config_path, save_config
    from gitdeploy.config.schema import (
        ClientConfig,
        CommandConfig,
        Config,
        PollServiceConfig,
        RepositoryConfig,
    )

    path = config_path or get_config_path()

    if path.exists():
        console.print(f"[yellow]Config already exists at {path}[/yellow]")
        if not typer.confirm("Overwrite?"):
            raise typer.Exit()

    config = Config(
        clients=[
            ClientConfig(
                name="example",
                enabled=False,
                repo=RepositoryConfig(
                    url="https://github.com/example/site.git",
                    path=str(Path.cwd() / "site"),
                ),
                commands_after=[CommandConfig(command=["echo", "updated"])],
                service=PollServiceConfig(interval=3600),
            )
        ]
    )
    save_config(config, path)
    console.print(f"[green]✓[/green] Created config at {path}")

    console.print(f"\n{__logo__} gitdeploy is ready!")
    console.print("\nNext steps:")
    console.print(f"  1. Edit the example client in [cyan]{path}[/cyan] and set [cyan]enabled[/cyan]")
    console.print("  2. Check it: [cyan]gitdeploy clients[/cyan]")
    console.print("  3. Run: [cyan]gitdeploy run[/cyan]")


# ============================================================================
# Clients
# ============================================================================


@app.command()
def clients(
    config_path: Path = typer.Option(None, "--config", "-c", help="Config file"),
):
    """Show configured clients."""
    from gitdeploy.errors import InvalidReferenceError
    from gitdeploy.repository import parse_reference
    from gitdeploy.utils import describe_path

    config = _load(config_path)

    if not config.clients:
        console.print("No clients configured.")
        return

    table = Table(title="Clients")
    table.add_column("Name", style="cyan")
    table.add_column("Enabled", style="green")
    table.add_column("URL")
    table.add_column("Path")
    table.add_column("Reference", style="yellow")
    table.add_column("Service")

    for idx, client in enumerate(config.clients):
        try:
            reference = str(parse_reference(client.repo.branch))
        except InvalidReferenceError as e:
            reference = f"[red]{e}[/red]"

        service = client.service.type
        if client.service.type == "poll":
            service = f"poll every {client.service.interval:g}s"
        else:
            service = f"webhook ({client.service.hook}) :{client.service.port}{client.service.path or '/'}"

        table.add_row(
            client.name or f"client {idx}",
            "✓" if client.enabled else "✗",
            client.repo.url,
            f"{client.repo.path} [dim]({describe_path(client.repo.path)})[/dim]",
            reference,
            service,
        )

    console.print(table)


# ============================================================================
# Run
# ============================================================================


@app.command()
def run(
    config_path: Path = typer.Option(None, "--config", "-c", help="Config file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Keep every enabled client in sync until interrupted."""
    from gitdeploy.client import App
    from gitdeploy.utils import setup_logging

    config = _load(config_path)
    setup_logging(config.logging, verbose)

    enabled = [c for c in config.clients if c.enabled]
    if not enabled:
        console.print("[yellow]No enabled clients in config[/yellow]")
        raise typer.Exit(1)

    console.print(f"{__logo__} Starting gitdeploy with {len(enabled)} client(s)...")

    async def main_loop() -> App:
        deploy = App(config)

        def signal_handler():
            """Handle signals for graceful shutdown."""
            deploy.shutdown.set()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, signal_handler)

        try:
            await deploy.start()
            await deploy.wait()
        finally:
            console.print("Shutting down...")
            await deploy.stop()
        return deploy

    deploy = asyncio.run(main_loop())

    if deploy.failures:
        for name, error in deploy.failures.items():
            console.print(f"[red]✗[/red] {name}: {error}")
        raise typer.Exit(1)

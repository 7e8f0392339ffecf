"""Entry point for ``python -m gitdeploy``."""

from gitdeploy.cli.commands import app

if __name__ == "__main__":
    app()

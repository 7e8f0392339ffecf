"""Utility functions for gitdeploy."""

import sys
from pathlib import Path

from loguru import logger

from gitdeploy.config.schema import LoggingConfig

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{extra[client]}</cyan> - <level>{message}</level>"
)


def setup_logging(config: LoggingConfig, verbose: bool = False) -> None:
    """Replace loguru's default sink with the configured ones."""
    level = "DEBUG" if verbose else config.level.upper()

    logger.remove()
    logger.configure(extra={"client": "gitdeploy"})
    logger.add(sys.stderr, level=level, format=LOG_FORMAT)

    if config.file:
        path = Path(config.file).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(path, level=level, format=LOG_FORMAT, rotation=config.rotation, colorize=False)


def describe_path(path: str | Path) -> str:
    """Short description of what is on disk at a checkout path."""
    path = Path(path)
    if not path.exists():
        return "missing"
    if not path.is_dir():
        return "not a directory"
    if (path / ".git").exists():
        return "git repository"
    if not any(path.iterdir()):
        return "empty"
    return "not a git directory"

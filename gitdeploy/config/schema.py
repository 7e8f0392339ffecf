"""Configuration schema using Pydantic."""

import shlex
from pathlib import Path
from typing import Annotated, Literal
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from gitdeploy.repository.reference import DEFAULT_REMOTE
from gitdeploy.services.poll import DEFAULT_INTERVAL, MIN_INTERVAL
from gitdeploy.services.webhook.service import DEFAULT_HOST, DEFAULT_PORT, DEFAULT_SHUTDOWN_GRACE


def repo_name_from_url(url: str) -> str:
    """Last path segment of a repository URL without ``.git``."""
    name = urlparse(url).path.rstrip("/").rsplit("/", 1)[-1]
    return name.removesuffix(".git")


class RepositoryConfig(BaseModel):
    """Repository to keep in sync."""
    url: str
    path: str = ""  # Defaults to ./<repo name>
    remote: str = DEFAULT_REMOTE
    branch: str = ""  # Branch name or {git.ref.*} marker
    username: str = ""
    password: str = ""  # Password or access token
    single_branch: bool = False
    depth: int = Field(default=0, ge=0)

    @field_validator("url")
    @classmethod
    def check_url(cls, value: str) -> str:
        if not value:
            raise ValueError("cannot create repository with empty URL")
        scheme = urlparse(value).scheme
        if scheme not in ("http", "https"):
            raise ValueError(f"url scheme '{scheme}' not supported")
        return value

    @model_validator(mode="after")
    def resolve_path(self) -> "RepositoryConfig":
        path = self.path or repo_name_from_url(self.url) or "."
        self.path = str(Path(path).expanduser().absolute())
        return self


class CommandConfig(BaseModel):
    """A command to run after every update."""
    model_config = ConfigDict(populate_by_name=True)

    command: list[str] = Field(default_factory=list)
    async_: bool = Field(default=False, alias="async")

    @field_validator("command", mode="before")
    @classmethod
    def split_command(cls, value):
        if isinstance(value, str):
            return shlex.split(value)
        return value


class PollServiceConfig(BaseModel):
    """Update at a fixed interval."""
    type: Literal["poll"] = "poll"
    interval: float = DEFAULT_INTERVAL  # Seconds

    @field_validator("interval")
    @classmethod
    def check_interval(cls, value: float) -> float:
        if value < MIN_INTERVAL:
            raise ValueError(
                f"interval for poll service cannot be less than {MIN_INTERVAL:g} seconds; given {value:g}"
            )
        return value


class WebhookServiceConfig(BaseModel):
    """Update when the hosting provider calls a webhook."""
    type: Literal["webhook"] = "webhook"
    hook: Literal["generic", "github"] = "generic"
    secret: str = ""
    host: str = DEFAULT_HOST
    port: int = Field(default=DEFAULT_PORT, ge=0, le=65535)
    path: str = ""
    shutdown_grace: float = Field(default=DEFAULT_SHUTDOWN_GRACE, gt=0)

    @field_validator("path")
    @classmethod
    def check_path(cls, value: str) -> str:
        if value and not value.startswith("/"):
            raise ValueError("path should be of the format '/path'")
        return value


ServiceConfig = Annotated[
    PollServiceConfig | WebhookServiceConfig,
    Field(discriminator="type"),
]


class ClientConfig(BaseModel):
    """One repository, its trigger and its post-update commands."""
    name: str = ""
    enabled: bool = True
    repo: RepositoryConfig
    commands_after: list[CommandConfig] = Field(default_factory=list)
    service: ServiceConfig = Field(default_factory=PollServiceConfig)
    run_commands_on_setup: bool = True
    update_on_trigger_error: bool = False


class LoggingConfig(BaseModel):
    """Log sinks."""
    level: str = "INFO"
    file: str = ""  # Empty disables the file sink
    rotation: str = "10 MB"


class Config(BaseModel):
    """Root configuration for gitdeploy."""
    clients: list[ClientConfig] = Field(default_factory=list)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

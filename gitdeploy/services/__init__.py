"""Trigger services deciding when a repository is synchronized."""

from __future__ import annotations

from typing import TYPE_CHECKING

from gitdeploy.services.base import Service, ServiceState, TriggerEvent, TriggerStream
from gitdeploy.services.poll import PollService
from gitdeploy.services.webhook import WebhookService

if TYPE_CHECKING:
    from gitdeploy.config.schema import ServiceConfig


def create_service(config: ServiceConfig) -> Service:
    """Build the trigger service selected by ``config.type``."""
    if config.type == "poll":
        return PollService(interval=config.interval)
    if config.type == "webhook":
        return WebhookService(
            secret=config.secret,
            hook=config.hook,
            host=config.host,
            port=config.port,
            path=config.path,
            shutdown_grace=config.shutdown_grace,
        )
    raise ValueError(f"unknown service type: {config.type}")


__all__ = [
    "PollService",
    "Service",
    "ServiceState",
    "TriggerEvent",
    "TriggerStream",
    "WebhookService",
    "create_service",
]

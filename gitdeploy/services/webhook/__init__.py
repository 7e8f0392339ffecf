"""Webhook trigger service and hook interpreters."""

from gitdeploy.services.webhook.hooks import (
    GenericHook,
    GitHubHook,
    Hook,
    HookConf,
    HookRequest,
    create_hook,
)
from gitdeploy.services.webhook.service import WebhookService

__all__ = [
    "GenericHook",
    "GitHubHook",
    "Hook",
    "HookConf",
    "HookRequest",
    "WebhookService",
    "create_hook",
]

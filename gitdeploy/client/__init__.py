"""Update orchestration: sessions binding repository, trigger and commands."""

from gitdeploy.client.app import App
from gitdeploy.client.client import Client
from gitdeploy.client.handler import WebhookHandler

__all__ = ["App", "Client", "WebhookHandler"]

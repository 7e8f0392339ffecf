"""Webhook interpreters for different git hosting providers."""

import hashlib
import hmac
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Mapping

from gitdeploy.errors import WebhookRejectedError
from gitdeploy.repository.reference import Reference

BRANCH_PREFIX = "refs/heads/"
TAG_PREFIX = "refs/tags/"


@dataclass
class HookRequest:
    """The parts of an inbound HTTP request a hook looks at."""
    method: str
    body: bytes = b""
    headers: Mapping[str, str] = field(default_factory=dict)

    def header(self, name: str) -> str:
        # HTTP header names are case-insensitive
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return ""

    def json(self) -> Any:
        try:
            return json.loads(self.body or b"null")
        except ValueError as e:
            raise WebhookRejectedError(f"invalid JSON body: {e}") from e


@dataclass
class HookConf:
    """What a hook needs to know about the session."""
    secret: str
    reference: Reference


def validate_request(request: HookRequest) -> None:
    """Only POST requests can carry an event."""
    if request.method.upper() != "POST":
        raise WebhookRejectedError(
            f"only POST method accepted; got {request.method}", status=405
        )


def check_ref(ref: str, reference: Reference) -> None:
    """
    Accept a pushed ref only if it concerns the tracked reference.

    Branch pushes must hit the tracked branch. Tag pushes must hit the
    tracked tag, or any tag when the latest tag is tracked.
    """
    if ref.startswith(BRANCH_PREFIX):
        if not reference.is_branch or ref != reference.git_ref:
            raise WebhookRejectedError(f"event: push to branch {ref}")
    elif ref.startswith(TAG_PREFIX):
        if not reference.track_latest_tag and ref != reference.git_ref:
            raise WebhookRejectedError(f"event: push to tag {ref}")
    else:
        raise WebhookRejectedError(f"ref {ref!r} is neither a tag nor a branch")


class Hook(ABC):
    """Decides whether a webhook request should trigger an update."""

    name: str = "hook"

    @abstractmethod
    def handle(self, request: HookRequest, conf: HookConf) -> None:
        """
        Validate the request.

        Raises:
            WebhookRejectedError: With the status code to answer with.
        """
        pass


class GenericHook(Hook):
    """Provider independent hook expecting a ``{"ref": "refs/heads/..."}`` body."""

    name = "generic"

    def handle(self, request: HookRequest, conf: HookConf) -> None:
        validate_request(request)
        body = request.json()
        if not isinstance(body, dict) or not isinstance(body.get("ref"), str):
            raise WebhookRejectedError("missing 'ref' in request body")
        check_ref(body["ref"], conf.reference)


class GitHubHook(Hook):
    """GitHub push, release and ping events, optionally signed with a secret."""

    name = "github"

    def handle(self, request: HookRequest, conf: HookConf) -> None:
        validate_request(request)
        self._verify_signature(request, conf.secret)

        event = request.header("X-GitHub-Event")
        if not event:
            raise WebhookRejectedError("header 'X-GitHub-Event' missing")

        if event == "ping":
            return

        if event == "push":
            body = request.json()
            ref = body.get("ref") if isinstance(body, dict) else None
            if not isinstance(ref, str):
                raise WebhookRejectedError("missing 'ref' in push event")
            check_ref(ref, conf.reference)
            return

        if event == "release":
            body = request.json()
            release = body.get("release") if isinstance(body, dict) else None
            tag_name = release.get("tag_name") if isinstance(release, dict) else None
            if not tag_name:
                raise WebhookRejectedError("invalid (empty) tag name")
            # Branch and fixed tag checkouts never move on a release
            if not conf.reference.track_latest_tag:
                raise WebhookRejectedError("repository does not track the latest tag")
            return

        raise WebhookRejectedError(f"cannot handle {event!r} event")

    def _verify_signature(self, request: HookRequest, secret: str) -> None:
        for header, algorithm in (
            ("X-Hub-Signature-256", hashlib.sha256),
            ("X-Hub-Signature", hashlib.sha1),
        ):
            signature = request.header(header)
            if not signature:
                continue
            if not secret:
                raise WebhookRejectedError("empty webhook secret")

            _, _, received = signature.partition("=")
            expected = hmac.new(secret.encode(), request.body, algorithm).hexdigest()
            if not hmac.compare_digest(received, expected):
                raise WebhookRejectedError("invalid signature", status=401)
            return

        if secret:
            raise WebhookRejectedError("missing signature", status=401)


HOOKS: dict[str, type[Hook]] = {
    GenericHook.name: GenericHook,
    GitHubHook.name: GitHubHook,
}


def create_hook(name: str) -> Hook:
    try:
        return HOOKS[name]()
    except KeyError:
        raise ValueError(f"unknown webhook type: {name}") from None

"""Exceptions raised by gitdeploy."""

from pathlib import Path


class GitDeployError(Exception):
    """Base exception for gitdeploy errors."""
    pass


class ConfigError(GitDeployError):
    """Configuration file could not be read or validated."""
    pass


class InvalidReferenceError(GitDeployError):
    """A branch/tag string carries a malformed reference marker."""

    def __init__(self, value: str, reason: str):
        self.value = value
        self.reason = reason
        super().__init__(f"invalid reference {value!r}: {reason}")


class NotAGitDirectoryError(GitDeployError):
    """The checkout path exists, is not empty and is not a git repository."""

    def __init__(self, path: str | Path):
        self.path = str(path)
        super().__init__(f"given path is neither empty nor a git directory: {self.path}")


class SetupError(GitDeployError):
    """Repository could not be cloned or opened. Fatal for the client."""
    pass


class UpdateError(GitDeployError):
    """A single update cycle failed. The next trigger retries."""
    pass


class NoTagFoundError(GitDeployError):
    """No tag is reachable from the tracked branch."""
    pass


class CommandError(GitDeployError):
    """A post-update command could not be spawned or exited non-zero."""

    def __init__(self, command: str, message: str, returncode: int | None = None):
        self.command = command
        self.returncode = returncode
        super().__init__(f"command '{command}' {message}")


class OperationCancelledError(GitDeployError):
    """The shutdown signal fired while an operation was in progress."""
    pass


class ServiceClosedError(GitDeployError):
    """An event was emitted on a trigger stream that is already closed."""
    pass


class WebhookRejectedError(GitDeployError):
    """A webhook request was not accepted as an update trigger."""

    def __init__(self, reason: str, status: int = 400):
        self.reason = reason
        self.status = status
        super().__init__(reason)

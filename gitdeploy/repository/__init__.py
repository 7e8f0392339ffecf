"""Repository synchronization."""

from gitdeploy.repository.reference import (
    DEFAULT_BRANCH,
    DEFAULT_REMOTE,
    Reference,
    ReferenceKind,
    parse_reference,
)
from gitdeploy.repository.repository import BasicAuth, Repository, UpdateResult

__all__ = [
    "DEFAULT_BRANCH",
    "DEFAULT_REMOTE",
    "BasicAuth",
    "Reference",
    "ReferenceKind",
    "Repository",
    "UpdateResult",
    "parse_reference",
]

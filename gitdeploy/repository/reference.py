"""Branch/tag reference parsing."""

from dataclasses import dataclass
from enum import Enum

from gitdeploy.errors import InvalidReferenceError

DEFAULT_BRANCH = "master"
DEFAULT_REMOTE = "origin"

_REF_PREFIX = "git.ref."
_LATEST_TAG = "latest_tag"
_LATEST_COMMIT = "latest_commit"


class ReferenceKind(str, Enum):
    """What a configured reference points at."""
    BRANCH = "branch"
    TAG = "tag"
    LATEST_TAG = "latest_tag"


@dataclass(frozen=True)
class Reference:
    """A resolved reference the checkout follows."""
    kind: ReferenceKind
    name: str

    @property
    def is_branch(self) -> bool:
        # Latest tag tracking fetches and checks out a branch before
        # searching for tags on it.
        return self.kind in (ReferenceKind.BRANCH, ReferenceKind.LATEST_TAG)

    @property
    def is_tag(self) -> bool:
        return self.kind is ReferenceKind.TAG

    @property
    def track_latest_tag(self) -> bool:
        return self.kind is ReferenceKind.LATEST_TAG

    @property
    def git_ref(self) -> str:
        """Full git reference name, e.g. ``refs/heads/master``."""
        if self.is_tag:
            return f"refs/tags/{self.name}"
        return f"refs/heads/{self.name}"

    def __str__(self) -> str:
        if self.track_latest_tag:
            return f"latest tag of {self.name}"
        return f"{self.kind.value} {self.name}"


def branch(name: str = "") -> Reference:
    return Reference(ReferenceKind.BRANCH, name or DEFAULT_BRANCH)


def tag(name: str) -> Reference:
    return Reference(ReferenceKind.TAG, name)


def latest_tag(branch_name: str = "") -> Reference:
    return Reference(ReferenceKind.LATEST_TAG, branch_name or DEFAULT_BRANCH)


def parse_reference(value: str) -> Reference:
    """
    Resolve a configured branch-or-tag string.

    Plain names are branches and an empty string is the default branch.
    Any value wrapped in braces must be one of these markers::

        {git.ref.branch.<branch>}                same as <branch>
        {git.ref.branch.<branch>.latest_commit}  same as <branch>
        {git.ref.latest_commit}                  default branch
        {git.ref.branch.<branch>.latest_tag}     latest tag reachable from <branch>
        {git.ref.latest_tag}                     same, for the default branch
        {git.ref.tag.<tag>}                      a fixed tag

    Raises:
        InvalidReferenceError: If a braced value is not a known marker or is malformed.
    """
    value = value.strip()
    if not value:
        return branch()

    if not (value.startswith("{") and value.endswith("}")):
        return branch(value)

    key = value[1:-1]
    if not key.startswith(_REF_PREFIX):
        raise InvalidReferenceError(value, "unknown placeholder")

    rest = key[len(_REF_PREFIX):]

    if rest == _LATEST_TAG:
        return latest_tag()
    if rest == _LATEST_COMMIT:
        return branch()

    if rest == "tag" or rest.startswith("tag."):
        name = rest[len("tag."):]
        if not name:
            raise InvalidReferenceError(value, "empty tag name")
        return tag(name)

    if rest == "branch" or rest.startswith("branch."):
        name = rest[len("branch."):]
        for suffix, build in ((_LATEST_TAG, latest_tag), (_LATEST_COMMIT, branch)):
            if name == suffix or name.endswith("." + suffix):
                name = name[: -(len(suffix) + 1)] if name != suffix else ""
                if not name:
                    raise InvalidReferenceError(value, "empty branch name")
                return build(name)
        if not name:
            raise InvalidReferenceError(value, "empty branch name")
        return branch(name)

    raise InvalidReferenceError(value, f"unknown reference type {rest!r}")

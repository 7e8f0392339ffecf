"""Git working copy synchronization."""

from __future__ import annotations

import asyncio
import base64
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Iterator

from git import Git, InvalidGitRepositoryError, NoSuchPathError, Repo
from git.refs.tag import TagReference
from loguru import logger

from gitdeploy.errors import NoTagFoundError, NotAGitDirectoryError
from gitdeploy.repository.reference import DEFAULT_REMOTE, Reference, parse_reference

if TYPE_CHECKING:
    from gitdeploy.config.schema import RepositoryConfig

DEFAULT_USERNAME = "gitdeploy"


@dataclass(frozen=True)
class BasicAuth:
    """HTTP basic credentials. With an access token only the password is needed."""
    username: str
    password: str

    def header(self) -> str:
        token = base64.b64encode(f"{self.username}:{self.password}".encode()).decode()
        return f"Authorization: Basic {token}"


@dataclass
class UpdateResult:
    """HEAD of the working copy before and after an update."""
    old_commit: str | None = None
    new_commit: str | None = None

    @property
    def changed(self) -> bool:
        return self.old_commit != self.new_commit


class Repository:
    """
    A git working copy at ``path`` whose remote ``remote`` points at ``url``.

    The instance owns the working tree: callers must not run two operations
    on it at the same time. Git commands are blocking, so the public
    coroutines run them in a worker thread.
    """

    def __init__(
        self,
        url: str,
        path: str | Path,
        remote: str = DEFAULT_REMOTE,
        branch: str = "",
        username: str = "",
        password: str = "",
        single_branch: bool = False,
        depth: int = 0,
    ):
        self.url = url
        self.path = Path(path)
        self.remote = remote or DEFAULT_REMOTE
        self.reference: Reference = parse_reference(branch)
        self.single_branch = single_branch
        self.depth = depth

        self.auth: BasicAuth | None = None
        if username or password:
            self.auth = BasicAuth(username or DEFAULT_USERNAME, password)

        self._repo: Repo | None = None

    @classmethod
    def from_config(cls, config: RepositoryConfig) -> Repository:
        return cls(
            url=config.url,
            path=config.path,
            remote=config.remote,
            branch=config.branch,
            username=config.username,
            password=config.password,
            single_branch=config.single_branch,
            depth=config.depth,
        )

    @property
    def repo(self) -> Repo:
        if self._repo is None:
            raise RuntimeError(f"repository at {self.path} is not set up")
        return self._repo

    # ========== Public API ==========

    async def setup(self) -> None:
        """Open or clone the repository. See ``setup_sync``."""
        await asyncio.to_thread(self.setup_sync)

    async def update(self) -> UpdateResult:
        """Bring the working copy up to date. See ``update_sync``."""
        return await asyncio.to_thread(self.update_sync)

    def setup_sync(self) -> None:
        """
        Open the repository at ``path`` or clone it there.

        An existing repository gets its remote re-pointed at ``url`` and the
        configured reference checked out, keeping its history. A missing or
        empty directory gets a fresh clone. Anything else is left untouched.

        Raises:
            NotAGitDirectoryError: If the path holds something that is not a
                repository.
            GitCommandError: If cloning, fetching or checkout fails.
        """
        try:
            self._repo = Repo(self.path)
        except NoSuchPathError:
            self._clone()
            return
        except InvalidGitRepositoryError:
            if not self.path.is_dir() or any(self.path.iterdir()):
                raise NotAGitDirectoryError(self.path)
            self._clone()
            return

        logger.debug(f"Opened existing repository at {self.path}")
        self._reset_remote()
        self._fetch()
        self._checkout(self.reference)

    def update_sync(self) -> UpdateResult:
        """
        Synchronize with the remote according to the tracked reference.

        Branches are fast-forward pulled, a fixed tag never changes, and
        latest-tag tracking checks out the newest tag reachable from the
        branch. Not finding any tag is not an error.
        """
        result = UpdateResult(old_commit=self._head_commit())

        if self.reference.track_latest_tag:
            try:
                tag = self._latest_tag()
            except NoTagFoundError:
                logger.debug(f"No tag found on {self.reference.name} in {self.path}")
            else:
                self._checkout_tag(tag.name)
        elif self.reference.is_branch:
            self._pull()

        result.new_commit = self._head_commit()
        return result

    def find_latest_tag(self, rev: str = "HEAD") -> TagReference:
        """
        Find the newest tag reachable from ``rev``.

        Tag names carry no ordering and tags may sit on unrelated branches,
        so the commit log is walked from ``rev`` in committer-date order and
        the first commit carrying a tag wins.

        Raises:
            NoTagFoundError: If no commit in the history is tagged.
        """
        tags: dict[str, TagReference] = {}
        for ref in sorted(self.repo.tags, key=lambda t: t.name):
            try:
                tags[ref.commit.hexsha] = ref
            except ValueError:
                # Tag pointing at a tree or blob
                continue

        if tags:
            for commit in self.repo.iter_commits(rev, date_order=True):
                if commit.hexsha in tags:
                    return tags[commit.hexsha]

        raise NoTagFoundError(f"no tag reachable from {rev} in {self.path}")

    # ========== Git operations ==========

    def _environment(self) -> dict[str, str]:
        # Never block an unattended process on a credential prompt
        env = {"GIT_TERMINAL_PROMPT": "0"}
        if self.auth:
            # Passed per invocation so the secret never lands in .git/config
            env.update({
                "GIT_CONFIG_COUNT": "1",
                "GIT_CONFIG_KEY_0": "http.extraHeader",
                "GIT_CONFIG_VALUE_0": self.auth.header(),
            })
        return env

    @contextmanager
    def _git(self) -> Iterator[Git]:
        with self.repo.git.custom_environment(**self._environment()):
            yield self.repo.git

    def _depth_options(self) -> dict[str, int]:
        return {"depth": self.depth} if self.depth > 0 else {}

    def _clone(self) -> None:
        logger.debug(f"Cloning {self.url} ({self.reference}) into {self.path}")
        options: dict = {"origin": self.remote, "branch": self.reference.name}
        options.update(self._depth_options())
        if self.single_branch:
            options["single_branch"] = True
        elif self.depth > 0:
            options["no_single_branch"] = True

        self._repo = Repo.clone_from(
            self.url, self.path, env=self._environment(), **options
        )
        # Single branch clones only follow tags on that branch
        self._fetch()

    def _reset_remote(self) -> None:
        if any(remote.name == self.remote for remote in self.repo.remotes):
            self.repo.delete_remote(self.repo.remote(self.remote))
        self.repo.create_remote(self.remote, self.url)

    def _fetch(self) -> None:
        with self._git() as git:
            git.fetch(self.remote, tags=True, force=True, **self._depth_options())

    def _pull(self) -> None:
        with self._git() as git:
            git.pull(self.remote, self.reference.name, ff_only=True, **self._depth_options())

    def _checkout(self, reference: Reference) -> None:
        if reference.is_tag:
            self._checkout_tag(reference.name)
            return

        with self._git() as git:
            if any(head.name == reference.name for head in self.repo.heads):
                git.checkout(reference.name)
            else:
                git.checkout("-b", reference.name, "--track", f"{self.remote}/{reference.name}")

    def _checkout_tag(self, name: str) -> None:
        with self._git() as git:
            git.checkout(f"refs/tags/{name}")

    def _fast_forward(self) -> None:
        tracking = f"{self.remote}/{self.reference.name}"
        if not any(ref.name == tracking for ref in self.repo.remote(self.remote).refs):
            return
        with self._git() as git:
            git.merge(tracking, ff_only=True)

    def _latest_tag(self) -> TagReference:
        self._fetch()
        self._checkout(self.reference)
        self._fast_forward()
        return self.find_latest_tag()

    def _head_commit(self) -> str | None:
        if self._repo is None:
            return None
        try:
            return self._repo.head.commit.hexsha
        except ValueError:
            # Unborn HEAD
            return None

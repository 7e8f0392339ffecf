"""Shared fixtures: local git repositories acting as remotes."""

from itertools import count
from pathlib import Path

import pytest
from git import Actor, Repo

AUTHOR = Actor("Test", "test@example.com")
_clock = count(1_700_000_000, 60)


class Upstream:
    """A local repository standing in for the remote end of a checkout."""

    def __init__(self, path: Path):
        self.path = path
        self.repo = Repo.init(path)
        self.repo.git.symbolic_ref("HEAD", "refs/heads/master")

    @property
    def url(self) -> str:
        return str(self.path)

    @property
    def head(self) -> str:
        return self.repo.head.commit.hexsha

    def commit(self, filename: str = "README.md", content: str | None = None, message: str = "") -> str:
        """Write a file and commit it. Commits get strictly increasing dates."""
        file = self.path / filename
        file.write_text(content if content is not None else f"{filename} {next(_clock)}\n")
        self.repo.index.add([filename])
        date = f"{next(_clock)} +0000"
        commit = self.repo.index.commit(
            message or f"update {filename}",
            author=AUTHOR,
            committer=AUTHOR,
            author_date=date,
            commit_date=date,
        )
        return commit.hexsha

    def tag(self, name: str) -> str:
        return self.repo.create_tag(name).commit.hexsha

    def branch(self, name: str) -> None:
        """Create a branch at HEAD and check it out."""
        self.repo.git.checkout("-b", name)

    def checkout(self, name: str) -> None:
        self.repo.git.checkout(name)


@pytest.fixture
def upstream(tmp_path: Path) -> Upstream:
    """Upstream repository with one commit on master."""
    up = Upstream(tmp_path / "upstream")
    up.commit("README.md", "hello\n", "initial commit")
    return up


@pytest.fixture
def checkout_path(tmp_path: Path) -> Path:
    """Where the working copy under test lives."""
    return tmp_path / "checkout"

"""Repositories for tests, built with GitPython and driven through a client."""

from pathlib import Path
from typing import Optional

import git

from gitclient.client import GitClient, create_client
from gitclient.config import ClientSettings

TEST_NAME = "Test User"
TEST_EMAIL = "test@example.com"


class WorkingArea:
    """
    A directory with a client bound to it.

    Fixture repositories are prepared with plain git (through GitPython);
    the operation under test goes through ``client``.
    """

    def __init__(self, root: Path, backend: str, settings: ClientSettings):
        self.root = root
        self.root.mkdir(parents=True, exist_ok=True)
        self.backend = backend
        self.settings = settings
        self.client: GitClient = create_client(root, backend=backend, settings=settings)

    @property
    def git(self) -> git.Git:
        return git.Git(str(self.root))

    @property
    def url(self) -> str:
        return str(self.root)

    def init(self, bare: bool = False) -> "WorkingArea":
        self.client.init_().workspace(self.root).bare(bare).execute()
        if not bare:
            self.configure_identity()
        return self

    def configure_identity(self) -> None:
        self.git.config("user.name", TEST_NAME)
        self.git.config("user.email", TEST_EMAIL)
        self.git.config("commit.gpgsign", "false")

    def touch(self, name: str, content: str = "") -> Path:
        path = self.root / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path

    def commit_file(self, name: str, content: str, message: Optional[str] = None) -> str:
        """Write, stage and commit a file with plain git; returns the new HEAD."""
        self.touch(name, content)
        self.git.add(name)
        self.git.commit("-m", message or f"update {name}")
        return self.head()

    def head(self, rev: str = "HEAD") -> str:
        return self.git.rev_parse(rev)

    def status(self) -> list:
        return self.git.status("--porcelain").splitlines()

"""
Shared mirror clones with Go build cache style paths.

One bare mirror per source repository lives under the cache directory,
laid out by host and path:

    ~/.cache/gitclient/mirrors/
    ├── github.com/
    │   └── user/
    │       └── repo.git/        # git clone --mirror
    └── localhost/
        └── srv/
            └── git/
                └── project.git/

Populating the cache is safe for concurrent callers (threads or processes)
without any lock file. Each caller clones into its own temporary directory
next to the destination and renames it into place; the rename is atomic,
so readers only ever see a complete mirror. When two callers race, one
rename wins and the loser's clone is discarded.

Usage:
    cache = MirrorCache()
    path = cache.local_mirror("https://github.com/user/repo")
    client.clone(url, reference=str(path))
"""

import errno
import logging
import os
import re
import shutil
import tempfile
from pathlib import Path
from typing import Callable, Optional
from urllib.parse import urlparse

from dulwich import porcelain
from dulwich.errors import NotGitRepository

from gitclient.client import GitClient, create_client
from gitclient.config import get_mirror_cache_dir

logger = logging.getLogger(__name__)

LOCAL_HOST = "localhost"


def is_local_path(url: str) -> bool:
    """
    Check if a repository URL is a local filesystem path rather than a remote URL.

    Local paths include ".", "..", absolute paths, and file:// URLs.

    Args:
        url: Repository URL or path

    Returns:
        True if this is a local filesystem path
    """
    url = url.strip()
    if url in (".", "..") or url.startswith("./") or url.startswith("../"):
        return True
    if url.startswith("/"):
        return True
    if url.startswith("file://"):
        return True
    return False


def _clean(path: str) -> str:
    parts = [part for part in path.split("/") if part not in ("", ".", "..")]
    return "/".join(parts)


def parse_repo_url(url: str) -> str:
    """
    Parse a git repository URL into a Go-style cache path.

    Examples:
        https://github.com/user/repo.git -> github.com/user/repo
        git@github.com:user/repo.git -> github.com/user/repo
        https://gitlab.com/group/subgroup/project -> gitlab.com/group/subgroup/project
        /srv/git/project.git -> localhost/srv/git/project

    Args:
        url: Git repository URL

    Returns:
        Path-like string (e.g., "github.com/user/repo")
    """
    # Remove .git suffix if present
    url = url.rstrip("/")
    if url.endswith(".git"):
        url = url[:-4]

    if is_local_path(url):
        if url.startswith("file://"):
            url = url[len("file://") :]
        return f"{LOCAL_HOST}/{_clean(os.path.abspath(url))}"

    # Handle SSH URLs (git@host:path)
    ssh_match = re.match(r"^(?:[^@/]+@)?([^:/]+):(?!//)(.+)$", url)
    if ssh_match:
        host, path = ssh_match.groups()
        return f"{host}/{_clean(path)}"

    # Handle HTTPS URLs
    parsed = urlparse(url)
    if parsed.netloc and parsed.path:
        # Drop credentials, keep host and port
        host = parsed.netloc.rsplit("@", 1)[-1].replace(":", "_")
        return f"{host}/{_clean(parsed.path)}"

    # Fallback: treat as is
    return _clean(url.replace(":", "/"))


def _publish(scratch: Path, destination: Path) -> bool:
    """
    Move a finished clone into place.

    Returns:
        True if this clone became the mirror, False if another caller won
    """
    if destination.exists():
        return False
    try:
        os.rename(scratch, destination)
        return True
    except OSError as e:
        if destination.exists():
            return False
        if e.errno != errno.EXDEV:
            raise
    # Move to an unused sibling name first; only the final rename publishes
    logger.debug(f"Atomic rename unsupported for {destination}, moving instead")
    staging = scratch.with_name(f"publish-{scratch.name}")
    shutil.move(str(scratch), str(staging))
    try:
        os.rename(staging, destination)
        return True
    except OSError:
        if destination.exists():
            return False
        raise
    finally:
        shutil.rmtree(staging, ignore_errors=True)


class MirrorCache:
    """
    Cache of mirror clones keyed by repository URL.

    Args:
        cache_dir: Base directory (defaults to the configured mirror cache)
        client_factory: Builds the client used to clone and fetch a path
            (defaults to create_client with the process backend)
    """

    def __init__(
        self,
        cache_dir: Optional[Path] = None,
        client_factory: Optional[Callable[[Path], GitClient]] = None,
    ):
        self.cache_dir = Path(cache_dir) if cache_dir else get_mirror_cache_dir()
        self.client_factory = client_factory or create_client

    def mirror_path(self, url: str) -> Path:
        return self.cache_dir / f"{parse_repo_url(url)}.git"

    def local_mirror(
        self, url: str, reference: Optional[str] = None, refresh: bool = False
    ) -> Path:
        """
        Get the mirror of url, creating it when missing.

        Args:
            url: Source repository URL
            reference: Existing repository to borrow objects from while cloning
            refresh: Fetch from the source when the mirror already exists

        Returns:
            Path to the bare mirror repository
        """
        destination = self.mirror_path(url)
        if destination.exists():
            if refresh:
                logger.info(f"Updating mirror of {url} at {destination}")
                self.client_factory(destination).fetch("origin")
            return destination

        destination.parent.mkdir(parents=True, exist_ok=True)
        scratch = Path(tempfile.mkdtemp(prefix="clone-", dir=destination.parent))
        try:
            logger.info(f"Cloning {url} to mirror cache at {destination}")
            self.client_factory(scratch).clone(url, reference=reference, mirror=True)
            if not _publish(scratch, destination):
                logger.info(f"Mirror of {url} was created concurrently, discarding clone")
        finally:
            shutil.rmtree(scratch, ignore_errors=True)
        return destination

    def describe_mirrors(self) -> list:
        """
        Describe the mirrors in the cache.

        Returns:
            List of dictionaries with repo information:
            - repo_path: Relative path in cache (e.g., "github.com/user/repo.git")
            - url: Source repository URL
            - head: HEAD commit hash (or "unknown" for an empty mirror)
            - branch: Branch HEAD points to (or "detached")
        """
        if not self.cache_dir.exists():
            return []

        results = []
        for repo_path in sorted(self.cache_dir.rglob("*.git")):
            if not repo_path.is_dir() or not (repo_path / "HEAD").is_file():
                continue
            try:
                repo = porcelain.open_repo(str(repo_path))
            except NotGitRepository as e:
                logger.debug(f"Failed to read repo at {repo_path}: {e}")
                continue

            with repo:
                config = repo.get_config()
                try:
                    remote_url = config.get((b"remote", b"origin"), b"url").decode("utf-8")
                except KeyError:
                    remote_url = "unknown"

                try:
                    head_commit = repo.head().decode("ascii")
                except KeyError:
                    head_commit = "unknown"

                branch_name = "detached"
                head_target = repo.refs.get_symrefs().get(b"HEAD")
                if head_target and head_target.startswith(b"refs/heads/"):
                    branch_name = head_target[len(b"refs/heads/") :].decode("utf-8")

            results.append(
                {
                    "repo_path": str(repo_path.relative_to(self.cache_dir)),
                    "url": remote_url,
                    "head": head_commit,
                    "branch": branch_name,
                }
            )
        return results

"""Value types shared by the client facade and both backends."""

import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, Optional, Tuple, Union

from git.config import GitConfigParser

from gitclient.exceptions import InvalidArgumentError

_SHA_RE = re.compile(r"^[0-9a-fA-F]{40}$")


@dataclass(frozen=True)
class ObjectId:
    """A 40 character hexadecimal object name."""

    sha: str

    def __post_init__(self):
        if not isinstance(self.sha, str) or not _SHA_RE.match(self.sha):
            raise InvalidArgumentError("object id", self.sha, "expected 40 hex digits")
        object.__setattr__(self, "sha", self.sha.lower())

    @classmethod
    def from_string(cls, value: str) -> "ObjectId":
        return cls(value.strip())

    @classmethod
    def from_bytes(cls, value: bytes) -> "ObjectId":
        """Accept either a raw 20 byte digest or 40 ascii hex digits."""
        if len(value) == 20:
            return cls(value.hex())
        return cls(value.decode("ascii"))

    @classmethod
    def is_valid(cls, value: str) -> bool:
        return bool(_SHA_RE.match(value))

    def abbreviate(self, length: int = 7) -> str:
        return self.sha[:length]

    def __str__(self) -> str:
        return self.sha


class TimeoutCategory(Enum):
    CHECKOUT = "checkout"
    SUBMODULE_UPDATE = "submodule_update"
    GENERIC = "generic"


class Capability(Enum):
    """Features whose availability depends on the backend in use."""

    TIMEOUT_ENFORCEMENT = "timeout_enforcement"
    FIX_SUBMODULE_URLS = "fix_submodule_urls"
    TRACKING_SUBMODULES = "tracking_submodules"
    SYMBOLIC_REFERENCES = "symbolic_references"


def has_timeout(value: Optional[int]) -> bool:
    """A non-positive (or missing) timeout means no deadline is enforced."""
    return value is not None and value > 0


@dataclass(frozen=True)
class RepositoryHandle:
    """
    Identifies a repository on disk.

    Attributes:
        work_tree: Directory the client operates in (the repository itself when bare)
        git_dir: Metadata store holding objects, refs and config
        bare: True when the repository has no working tree
    """

    work_tree: Path
    git_dir: Path
    bare: bool = False

    @classmethod
    def discover(cls, path: Union[str, Path]) -> "RepositoryHandle":
        work_tree = Path(path).absolute()
        dot_git = work_tree / ".git"
        if dot_git.exists():
            if dot_git.is_file():
                # gitdir: pointer used by submodules and linked worktrees
                target = dot_git.read_text(encoding="utf-8").strip()
                if target.startswith("gitdir:"):
                    git_dir = Path(target[len("gitdir:") :].strip())
                    if not git_dir.is_absolute():
                        git_dir = (work_tree / git_dir).resolve()
                    return cls(work_tree=work_tree, git_dir=git_dir, bare=False)
            return cls(work_tree=work_tree, git_dir=dot_git, bare=False)
        if _looks_bare(work_tree):
            return cls(work_tree=work_tree, git_dir=work_tree, bare=True)
        return cls(work_tree=work_tree, git_dir=dot_git, bare=False)

    @property
    def config_file(self) -> Path:
        return self.git_dir / "config"

    def exists(self) -> bool:
        return (self.git_dir / "HEAD").is_file() and (self.git_dir / "objects").is_dir()


def _looks_bare(path: Path) -> bool:
    return (
        (path / "HEAD").is_file()
        and (path / "objects").is_dir()
        and (path / "refs").is_dir()
    )


@dataclass(frozen=True)
class RemoteConfig:
    name: str
    url: str
    push_url: Optional[str] = None
    fetch_refspecs: Tuple[str, ...] = ()

    @property
    def effective_push_url(self) -> str:
        return self.push_url or self.url

    @classmethod
    def from_config_file(cls, config_file: Path, name: str) -> Optional["RemoteConfig"]:
        """
        Read a remote definition from a git config file.

        Args:
            config_file: Path to the repository's config file
            name: Remote name

        Returns:
            The remote, or None when the file has no url for it
        """
        if not config_file.exists():
            return None
        parser = GitConfigParser(str(config_file), read_only=True)
        parser.read()
        section = f'remote "{name}"'
        if not parser.has_section(section) or not parser.has_option(section, "url"):
            return None
        url = parser.get_value(section, "url")
        push_url = None
        if parser.has_option(section, "pushurl"):
            push_url = str(parser.get_value(section, "pushurl"))
        fetch: Tuple[str, ...] = ()
        if parser.has_option(section, "fetch"):
            fetch = tuple(str(v) for v in parser.get_values(section, "fetch"))
        return cls(name=name, url=str(url), push_url=push_url, fetch_refspecs=fetch)


@dataclass(frozen=True)
class SubmoduleRecord:
    name: str
    path: str
    url: str
    pinned: Optional[ObjectId] = None
    branch: Optional[str] = None


@dataclass(frozen=True)
class CommandResult:
    """Output of one external command."""

    args: Tuple[str, ...]
    output: str
    error: str
    status: int
    elapsed: float

    @property
    def ok(self) -> bool:
        return self.status == 0


@dataclass(frozen=True)
class TreeEntry:
    mode: str
    type: str
    object: str
    path: str


@dataclass(frozen=True)
class ProxyConfiguration:
    host: str
    port: int
    username: Optional[str] = None
    password: Optional[str] = field(default=None, repr=False)
    no_proxy_hosts: Optional[str] = None

    @property
    def url(self) -> str:
        credentials = ""
        if self.username:
            credentials = self.username
            if self.password:
                credentials += f":{self.password}"
            credentials += "@"
        return f"http://{credentials}{self.host}:{self.port}"

    def environment(self) -> Dict[str, str]:
        """Environment variables understood by git and its http transport."""
        env = {
            "http_proxy": self.url,
            "https_proxy": self.url,
            "HTTP_PROXY": self.url,
            "HTTPS_PROXY": self.url,
        }
        if self.no_proxy_hosts:
            env["no_proxy"] = self.no_proxy_hosts
            env["NO_PROXY"] = self.no_proxy_hosts
        return env

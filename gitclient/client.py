"""
Client facade.

A GitClient is bound to one repository and one backend, chosen when the
client is created:

    client = create_client(path, backend="git")      # shells out to git
    client = create_client(path, backend="dulwich")  # in-process

Arguments are validated here, before a backend sees them. Reference
matching and default remote selection are shared so both backends answer
the same way.
"""

import logging
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, TextIO, Union

from gitclient.backends import BACKENDS, GitBackend
from gitclient.commands import (
    ChangelogCommand,
    CheckoutCommand,
    InitCommand,
    SubmoduleUpdateCommand,
)
from gitclient.config import ClientSettings, Identity, load_settings
from gitclient.exceptions import InvalidArgumentError
from gitclient.model import (
    Capability,
    ObjectId,
    RemoteConfig,
    RepositoryHandle,
    SubmoduleRecord,
    TreeEntry,
)
from gitclient.refs import (
    choose_default_remote,
    glob_to_regex,
    match_references,
    resolve_single,
)

# Default observability sink for executed commands
COMMAND_LOGGER = "gitclient.commands"


def _require(argument: str, value: object) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidArgumentError(argument, value)
    return value


class GitClient:
    def __init__(self, backend: GitBackend):
        self.backend = backend
        self._author: Optional[Identity] = backend.settings.author
        self._committer: Optional[Identity] = backend.settings.committer

    @property
    def handle(self) -> RepositoryHandle:
        return self.backend.handle

    @property
    def work_tree(self) -> Path:
        return self.backend.work_tree

    @property
    def settings(self) -> ClientSettings:
        return self.backend.settings

    @property
    def listener(self) -> logging.Logger:
        return self.backend.listener

    @property
    def backend_name(self) -> str:
        return self.backend.name

    def __repr__(self) -> str:
        return f"GitClient({str(self.work_tree)!r}, backend={self.backend_name!r})"

    def supports(self, capability: Capability) -> bool:
        return self.backend.supports(capability)

    def set_author(self, name: str, email: str) -> None:
        self._author = Identity(_require("author name", name), email)

    def set_committer(self, name: str, email: str) -> None:
        self._committer = Identity(_require("committer name", name), email)

    def _rebind(self) -> None:
        self.backend.bind(RepositoryHandle.discover(self.work_tree))

    # repository lifecycle

    def init(self) -> None:
        self.init_().workspace(self.work_tree).execute()

    def init_(self) -> InitCommand:
        return InitCommand(self)

    def _run_init(self, workspace: Optional[Path], bare: bool) -> None:
        target = Path(workspace).absolute() if workspace else self.work_tree
        self.backend.init(target, bare)
        if target == self.work_tree:
            self._rebind()

    def clone(
        self,
        url: str,
        remote: str = "origin",
        reference: Optional[str] = None,
        mirror: bool = False,
        timeout: Optional[int] = None,
    ) -> None:
        _require("url", url)
        _require("remote name", remote)
        self.backend.clone(url, remote, reference, mirror, timeout=timeout)
        self._rebind()

    def has_git_repo(self) -> bool:
        return self.backend.has_git_repo()

    # working tree and history

    def fetch(
        self, remote: str, refspecs: Sequence[str] = (), timeout: Optional[int] = None
    ) -> None:
        _require("remote", remote)
        for refspec in refspecs:
            _require("refspec", refspec)
        self.backend.fetch(remote, list(refspecs), timeout=timeout)

    def checkout(
        self, ref: str, branch: Optional[str] = None, timeout: Optional[int] = None
    ) -> None:
        _require("ref", ref)
        if branch is not None:
            _require("branch", branch)
        self.backend.checkout(ref, branch, timeout=timeout)

    def checkout_(self) -> CheckoutCommand:
        return CheckoutCommand(self)

    def add(self, path: str) -> None:
        self.backend.add(_require("path", path))

    def rm(self, path: str) -> None:
        self.backend.rm(_require("path", path))

    def commit(self, message: str, allow_empty: bool = False) -> None:
        _require("commit message", message)
        self.backend.commit(message, allow_empty, self._author, self._committer)

    def tag(self, name: str, message: Optional[str] = None, force: bool = False) -> None:
        self.backend.tag(_require("tag name", name), message, force)

    def push(
        self,
        remote: Union[str, RemoteConfig],
        refspec: str,
        force: bool = False,
        timeout: Optional[int] = None,
    ) -> None:
        if isinstance(remote, RemoteConfig):
            remote = remote.effective_push_url
        _require("remote", remote)
        _require("refspec", refspec)
        self.backend.push(remote, refspec, force, timeout=timeout)

    def reset(self, hard: bool = False) -> None:
        """
        Restore the index to HEAD; with hard=True the working tree as well.

        Files that are staged but absent from HEAD are removed by a hard
        reset, tracked files that were deleted come back, untracked files are
        left alone. Without a valid HEAD this does nothing.
        """
        self.backend.reset(hard)

    def rev_parse(self, rev: str) -> ObjectId:
        return self.backend.rev_parse(_require("revision", rev))

    def changelog(
        self,
        rev_from: Optional[str],
        rev_to: str,
        out: Optional[TextIO] = None,
        max_count: Optional[int] = None,
    ) -> str:
        """
        Raw log (``git log --raw --format=raw``) of rev_from..rev_to.

        Args:
            rev_from: Excluded revision; None lists all history of rev_to
            rev_to: Included revision
            out: Stream the text is also written to
            max_count: Limit on the number of commits

        Returns:
            The changelog text
        """
        if rev_from is not None:
            _require("revision", rev_from)
        _require("revision", rev_to)
        if max_count is not None and max_count < 0:
            raise InvalidArgumentError("max count", max_count, "must not be negative")
        text = self.backend.changelog(rev_from, rev_to, max_count)
        if out is not None:
            out.write(text)
        return text

    def changelog_(self) -> ChangelogCommand:
        return ChangelogCommand(self)

    def show_revision(self, rev: str) -> List[str]:
        return self.backend.show_revision(_require("revision", rev))

    def ls_tree(self, treeish: str = "HEAD", recursive: bool = False) -> List[TreeEntry]:
        return self.backend.ls_tree(_require("tree-ish", treeish), recursive)

    # remotes

    def get_remote_url(self, name: str) -> Optional[str]:
        return self.backend.get_config(f"remote.{_require('remote name', name)}.url")

    def set_remote_url(self, name: str, url: str) -> None:
        _require("remote name", name)
        self.backend.set_config(f"remote.{name}.url", _require("url", url))

    def add_remote(self, name: str, url: str) -> None:
        self.backend.add_remote(_require("remote name", name), _require("url", url))

    def get_remote_config(self, name: str) -> Optional[RemoteConfig]:
        return RemoteConfig.from_config_file(
            self.handle.config_file, _require("remote name", name)
        )

    def get_remote_names(self) -> List[str]:
        return self.backend.remote_names()

    def get_default_remote(self, name: str = "origin") -> Optional[str]:
        """Name itself when configured, else the first configured remote."""
        return choose_default_remote(
            _require("remote name", name), self.backend.remote_names()
        )

    # remote references

    def get_remote_references(
        self,
        url: str,
        pattern: Optional[str] = None,
        heads_only: bool = False,
        tags_only: bool = False,
    ) -> Dict[str, ObjectId]:
        _require("url", url)
        references = self.backend.list_remote_references(
            url, pattern, heads_only, tags_only
        )
        return match_references(references, pattern, heads_only, tags_only)

    def get_head_rev(self, url: str, branch_spec: str) -> ObjectId:
        """
        Resolve a branch specification against a remote to one commit.

        ``master``, ``*/master`` and ``m*s?er`` all name refs/heads/master.
        Tags are never considered.
        """
        _require("url", url)
        _require("branch specification", branch_spec)
        references = self.backend.list_remote_references(
            url, branch_spec, True, False
        )
        return resolve_single(references, branch_spec, url)

    def get_remote_symbolic_references(
        self, url: str, pattern: Optional[str] = None
    ) -> Dict[str, str]:
        _require("url", url)
        if not self.supports(Capability.SYMBOLIC_REFERENCES):
            raise self.backend.unsupported("get_remote_symbolic_references")
        symrefs = self.backend.list_remote_symbolic_references(url)
        if not pattern:
            return symrefs
        regex = glob_to_regex(pattern)
        return {name: target for name, target in symrefs.items() if regex.match(name)}

    # submodules

    def add_submodule(self, url: str, path: str) -> None:
        self.backend.add_submodule(_require("url", url), _require("path", path))

    def submodule_init(self, recursive: bool = False) -> None:
        self.backend.submodule_init(recursive)

    def submodule_update(self) -> SubmoduleUpdateCommand:
        return SubmoduleUpdateCommand(self)

    def _run_submodule_update(self, command: SubmoduleUpdateCommand) -> None:
        if command.is_remote_tracking and not self.supports(
            Capability.TRACKING_SUBMODULES
        ):
            raise self.backend.unsupported("remote tracking submodule update")
        self.backend.submodule_update(command)

    def get_submodules(self) -> List[SubmoduleRecord]:
        return self.backend.submodules()

    def set_submodule_url(self, name: str, url: str) -> None:
        _require("submodule name", name)
        self.backend.set_config(f"submodule.{name}.url", _require("url", url))

    def fix_submodule_urls(self, remote: str = "origin") -> None:
        self.backend.fix_submodule_urls(_require("remote name", remote))


def create_client(
    path: Union[str, Path],
    backend: str = "git",
    settings: Optional[ClientSettings] = None,
    logger: Optional[logging.Logger] = None,
    env: Optional[Mapping[str, str]] = None,
) -> GitClient:
    """
    Create a client for the repository at path.

    Args:
        path: Working tree (or bare repository) directory; need not exist yet
        backend: "git" (process backend) or "dulwich" (library backend)
        settings: Explicit settings; read from the config file when None
        logger: Sink for executed commands (defaults to "gitclient.commands")
        env: Environment for git processes (defaults to os.environ)

    Returns:
        A GitClient bound to path
    """
    try:
        backend_class = BACKENDS[backend]
    except KeyError:
        raise InvalidArgumentError(
            "backend", backend, f"expected one of {', '.join(sorted(BACKENDS))}"
        ) from None
    if settings is None:
        settings = load_settings()
    listener = logger or logging.getLogger(COMMAND_LOGGER)
    handle = RepositoryHandle.discover(path)
    return GitClient(backend_class(handle, settings, listener, env))

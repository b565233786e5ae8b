"""
Backend interface.

A backend performs the operations of the client facade against one
repository. Inputs arrive already validated; results leave as gitclient
model types and failures as gitclient exceptions.
"""

import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, Dict, FrozenSet, List, Mapping, Optional, Sequence

from gitclient.config import ClientSettings, Identity
from gitclient.exceptions import UnsupportedOperationError
from gitclient.model import (
    Capability,
    ObjectId,
    RepositoryHandle,
    SubmoduleRecord,
    TimeoutCategory,
    TreeEntry,
)

if TYPE_CHECKING:
    from gitclient.commands import SubmoduleUpdateCommand


class GitBackend(ABC):
    name: str = "abstract"
    capabilities: FrozenSet[Capability] = frozenset()

    def __init__(
        self,
        handle: RepositoryHandle,
        settings: ClientSettings,
        listener: logging.Logger,
        env: Optional[Mapping[str, str]] = None,
    ):
        self.handle = handle
        self.settings = settings
        self.listener = listener
        self.env: Dict[str, str] = dict(os.environ if env is None else env)

    def bind(self, handle: RepositoryHandle) -> None:
        self.handle = handle

    @property
    def work_tree(self) -> Path:
        return self.handle.work_tree

    def supports(self, capability: Capability) -> bool:
        return capability in self.capabilities

    def unsupported(self, operation: str) -> UnsupportedOperationError:
        return UnsupportedOperationError(operation, self.name)

    def timeout_for(
        self, category: TimeoutCategory, explicit: Optional[int] = None
    ) -> int:
        if explicit is not None:
            return explicit
        return self.settings.timeout_for(category)

    # repository lifecycle

    @abstractmethod
    def init(self, workspace: Path, bare: bool) -> None:
        pass

    @abstractmethod
    def clone(
        self,
        url: str,
        remote: str,
        reference: Optional[str],
        mirror: bool,
        timeout: Optional[int] = None,
    ) -> None:
        pass

    @abstractmethod
    def has_git_repo(self) -> bool:
        pass

    # working tree and history

    @abstractmethod
    def fetch(
        self, remote: str, refspecs: Sequence[str], timeout: Optional[int] = None
    ) -> None:
        pass

    @abstractmethod
    def checkout(
        self, ref: str, branch: Optional[str], timeout: Optional[int] = None
    ) -> None:
        pass

    @abstractmethod
    def add(self, path: str) -> None:
        pass

    @abstractmethod
    def rm(self, path: str) -> None:
        pass

    @abstractmethod
    def commit(
        self,
        message: str,
        allow_empty: bool,
        author: Optional[Identity],
        committer: Optional[Identity],
    ) -> None:
        pass

    @abstractmethod
    def tag(self, name: str, message: Optional[str], force: bool) -> None:
        pass

    @abstractmethod
    def push(
        self, remote: str, refspec: str, force: bool, timeout: Optional[int] = None
    ) -> None:
        pass

    @abstractmethod
    def reset(self, hard: bool) -> None:
        pass

    @abstractmethod
    def rev_parse(self, rev: str) -> ObjectId:
        pass

    @abstractmethod
    def changelog(
        self, rev_from: Optional[str], rev_to: str, max_count: Optional[int]
    ) -> str:
        pass

    @abstractmethod
    def show_revision(self, rev: str) -> List[str]:
        pass

    @abstractmethod
    def ls_tree(self, treeish: str, recursive: bool) -> List[TreeEntry]:
        pass

    # configuration and remotes

    @abstractmethod
    def get_config(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    def set_config(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    def remote_names(self) -> List[str]:
        """Remote names in configuration file order."""
        pass

    @abstractmethod
    def add_remote(self, name: str, url: str) -> None:
        pass

    # remote references

    @abstractmethod
    def list_remote_references(
        self, url: str, pattern: Optional[str], heads_only: bool, tags_only: bool
    ) -> Dict[str, ObjectId]:
        """
        Raw reference listing of a remote repository.

        The pattern and filters are hints a backend may use to narrow the
        listing; the caller still applies the shared matching rules.
        """
        pass

    @abstractmethod
    def list_remote_symbolic_references(self, url: str) -> Dict[str, str]:
        pass

    # submodules

    @abstractmethod
    def add_submodule(self, url: str, path: str) -> None:
        pass

    @abstractmethod
    def submodule_init(self, recursive: bool) -> None:
        pass

    @abstractmethod
    def submodule_update(self, command: "SubmoduleUpdateCommand") -> None:
        pass

    @abstractmethod
    def submodules(self) -> List[SubmoduleRecord]:
        pass

    def fix_submodule_urls(self, remote: str) -> None:
        raise self.unsupported("fix_submodule_urls")

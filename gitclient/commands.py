"""
Fluent option builders for multi-parameter operations.

A builder collects options and hands them to the client's backend when
``execute()`` is called:

    client.init_().workspace(path).bare(True).execute()
    client.submodule_update().recursive(True).remote_tracking(True).execute()
"""

from pathlib import Path
from typing import TYPE_CHECKING, Dict, Optional, TextIO, Union

from gitclient.exceptions import InvalidArgumentError

if TYPE_CHECKING:
    from gitclient.client import GitClient


class InitCommand:
    def __init__(self, client: "GitClient"):
        self._client = client
        self._workspace: Optional[Path] = None
        self._bare = False

    def workspace(self, path: Union[str, Path]) -> "InitCommand":
        self._workspace = Path(path)
        return self

    def bare(self, bare: bool) -> "InitCommand":
        self._bare = bare
        return self

    def execute(self) -> None:
        self._client._run_init(self._workspace, self._bare)


class CheckoutCommand:
    def __init__(self, client: "GitClient"):
        self._client = client
        self._ref: Optional[str] = None
        self._branch: Optional[str] = None
        self._timeout: Optional[int] = None

    def ref(self, ref: str) -> "CheckoutCommand":
        self._ref = ref
        return self

    def branch(self, branch: str) -> "CheckoutCommand":
        self._branch = branch
        return self

    def timeout(self, seconds: int) -> "CheckoutCommand":
        self._timeout = seconds
        return self

    def execute(self) -> None:
        if self._ref is None:
            raise InvalidArgumentError("ref", None)
        self._client.checkout(self._ref, branch=self._branch, timeout=self._timeout)


class SubmoduleUpdateCommand:
    """
    Options for updating submodules.

    recursive descends into nested submodules; remote_tracking selects the
    policy: False checks out the commit pinned by the superproject, True
    advances to the tip of the submodule's tracked branch.
    """

    def __init__(self, client: "GitClient"):
        self._client = client
        self.is_recursive = False
        self.is_remote_tracking = False
        self.reference_path: Optional[str] = None
        self.branches: Dict[str, str] = {}
        self.timeout_seconds: Optional[int] = None

    def recursive(self, recursive: bool) -> "SubmoduleUpdateCommand":
        self.is_recursive = recursive
        return self

    def remote_tracking(self, remote_tracking: bool) -> "SubmoduleUpdateCommand":
        self.is_remote_tracking = remote_tracking
        return self

    def reference(self, path: Optional[str]) -> "SubmoduleUpdateCommand":
        self.reference_path = path
        return self

    def use_branch(self, submodule: str, branch: str) -> "SubmoduleUpdateCommand":
        if not submodule or not branch:
            raise InvalidArgumentError("submodule branch", f"{submodule}:{branch}")
        self.branches[submodule] = branch
        return self

    def timeout(self, seconds: int) -> "SubmoduleUpdateCommand":
        self.timeout_seconds = seconds
        return self

    def execute(self) -> None:
        self._client._run_submodule_update(self)


class ChangelogCommand:
    def __init__(self, client: "GitClient"):
        self._client = client
        self._excludes: Optional[str] = None
        self._includes: Optional[str] = None
        self._out: Optional[TextIO] = None
        self._max: Optional[int] = None

    def excludes(self, rev: str) -> "ChangelogCommand":
        self._excludes = rev
        return self

    def includes(self, rev: str) -> "ChangelogCommand":
        self._includes = rev
        return self

    def to(self, out: TextIO) -> "ChangelogCommand":
        self._out = out
        return self

    def max(self, count: int) -> "ChangelogCommand":
        self._max = count
        return self

    def execute(self) -> str:
        if self._includes is None:
            raise InvalidArgumentError("changelog revision", None)
        return self._client.changelog(
            self._excludes, self._includes, out=self._out, max_count=self._max
        )

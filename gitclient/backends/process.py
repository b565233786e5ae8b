"""
Process backend: every operation is one invocation of the git executable.

Each command is echoed to the client's listener as ``" > git <args>"``; when
the command runs under a deadline the line ends with ``" # timeout=<n>"`` so
the timeout that reached the process can be checked from the log alone.
"""

import logging
import posixpath
import re
from pathlib import Path
from typing import TYPE_CHECKING, Dict, List, Mapping, Optional, Sequence, Tuple

from gitclient.backends.base import GitBackend
from gitclient.config import ClientSettings, Identity
from gitclient.exceptions import OperationFailedError
from gitclient.launcher import ProcessLauncher
from gitclient.model import (
    Capability,
    CommandResult,
    ObjectId,
    RepositoryHandle,
    SubmoduleRecord,
    TimeoutCategory,
    TreeEntry,
    has_timeout,
)
from gitclient.refs import namespaces, parse_ls_remote, parse_symbolic_refs, qualify

if TYPE_CHECKING:
    from gitclient.commands import SubmoduleUpdateCommand

logger = logging.getLogger(__name__)

GITLINK_MODE = "160000"

_SUBMODULE_KEY_RE = re.compile(r"^submodule\.(.+)\.(path|url|branch)$")
_REMOTE_URL_KEY_RE = re.compile(r"^remote\.(.+)\.url$")
_VERSION_RE = re.compile(r"(\d+)\.(\d+)(?:\.(\d+))?")

# git 1.8.2 introduced "submodule update --remote"
TRACKING_SUBMODULES_VERSION = (1, 8, 2)


class CliGitBackend(GitBackend):
    name = "git"
    capabilities = frozenset(
        {
            Capability.TIMEOUT_ENFORCEMENT,
            Capability.FIX_SUBMODULE_URLS,
            Capability.TRACKING_SUBMODULES,
            Capability.SYMBOLIC_REFERENCES,
        }
    )

    def __init__(
        self,
        handle: RepositoryHandle,
        settings: ClientSettings,
        listener: logging.Logger,
        env: Optional[Mapping[str, str]] = None,
        launcher: Optional[ProcessLauncher] = None,
    ):
        super().__init__(handle, settings, listener, env)
        self.launcher = launcher or ProcessLauncher()
        self._version: Optional[Tuple[int, ...]] = None

    def supports(self, capability: Capability) -> bool:
        if capability is Capability.TRACKING_SUBMODULES:
            return self.is_at_least_version(*TRACKING_SUBMODULES_VERSION)
        return super().supports(capability)

    def is_at_least_version(self, *version: int) -> bool:
        installed = self.version()
        return installed is not None and installed >= tuple(version)

    def version(self) -> Optional[Tuple[int, ...]]:
        """Version of the configured git executable, None when it cannot be run."""
        if self._version is None:
            try:
                result = self.launch("version", cwd=self.existing_directory(), check=False)
            except OperationFailedError as e:
                logger.debug(f"Could not determine git version: {e}")
                return None
            match = _VERSION_RE.search(result.output)
            if not result.ok or not match:
                return None
            self._version = tuple(int(part or 0) for part in match.groups())
        return self._version

    def existing_directory(self) -> Path:
        """The work tree, or its nearest existing parent before it is created."""
        directory = self.work_tree
        while not directory.is_dir() and directory.parent != directory:
            directory = directory.parent
        return directory

    # command execution

    @property
    def display_name(self) -> str:
        executable = Path(self.settings.git_executable).name
        if executable.lower().endswith(".exe"):
            executable = executable[:-4]
        return executable

    def _environment(self, extra: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
        env = dict(self.env)
        if self.settings.proxy is not None:
            env.update(self.settings.proxy.environment())
        if extra:
            env.update(extra)
        return env

    def _file_protocol_env(self) -> Dict[str, str]:
        """Allow local submodule clones without altering the command line."""
        if not self.settings.allow_file_protocol:
            return {}
        index = int(self.env.get("GIT_CONFIG_COUNT", "0") or 0)
        return {
            "GIT_CONFIG_COUNT": str(index + 1),
            f"GIT_CONFIG_KEY_{index}": "protocol.file.allow",
            f"GIT_CONFIG_VALUE_{index}": "always",
        }

    def launch(
        self,
        *args: str,
        timeout: Optional[int] = None,
        cwd: Optional[Path] = None,
        env: Optional[Mapping[str, str]] = None,
        check: bool = True,
    ) -> CommandResult:
        """
        Run ``git <args>``.

        Args:
            args: Arguments after the executable
            timeout: Deadline in seconds (non-positive: none)
            cwd: Working directory (defaults to the repository work tree)
            env: Extra environment variables for this command
            check: Raise OperationFailedError on non-zero exit status

        Returns:
            The captured CommandResult
        """
        command_line = " ".join([self.display_name, *args])
        message = f" > {command_line}"
        if has_timeout(timeout):
            message += f" # timeout={timeout}"
        self.listener.info(message)

        argv = [self.settings.git_executable, *args]
        result = self.launcher.launch(
            argv,
            cwd or self.work_tree,
            env=self._environment(env),
            timeout=timeout,
        )
        logger.debug(f"{command_line} exited {result.status} in {result.elapsed:.2f}s")
        if check and not result.ok:
            raise OperationFailedError.from_command(
                command_line, result.status, result.output, result.error
            )
        return result

    def _generic_timeout(self, explicit: Optional[int] = None) -> int:
        return self.timeout_for(TimeoutCategory.GENERIC, explicit)

    # repository lifecycle

    def init(self, workspace: Path, bare: bool) -> None:
        workspace.mkdir(parents=True, exist_ok=True)
        args = ["init"]
        if bare:
            args.append("--bare")
        self.launch(*args, cwd=workspace, timeout=self._generic_timeout())

    def clone(
        self,
        url: str,
        remote: str,
        reference: Optional[str],
        mirror: bool,
        timeout: Optional[int] = None,
    ) -> None:
        destination = self.work_tree
        destination.mkdir(parents=True, exist_ok=True)
        args = ["clone"]
        if mirror:
            args.append("--mirror")
        else:
            args.extend(["-o", remote])
        if reference:
            if Path(reference).is_dir():
                args.extend(["--reference", reference])
            else:
                self.listener.warning(f"Reference path does not exist: {reference}")
        args.extend([url, str(destination)])
        self.launch(*args, cwd=destination.parent, timeout=self._generic_timeout(timeout))

    def has_git_repo(self) -> bool:
        if not self.work_tree.is_dir() or not self.handle.exists():
            return False
        result = self.launch("rev-parse", "--is-bare-repository", check=False)
        return result.ok

    # working tree and history

    def fetch(
        self, remote: str, refspecs: Sequence[str], timeout: Optional[int] = None
    ) -> None:
        self.launch(
            "fetch", "--tags", remote, *refspecs, timeout=self._generic_timeout(timeout)
        )

    def checkout(
        self, ref: str, branch: Optional[str], timeout: Optional[int] = None
    ) -> None:
        args = ["checkout", "-f"]
        if branch:
            args.extend(["-B", branch])
        args.append(ref)
        self.launch(*args, timeout=self.timeout_for(TimeoutCategory.CHECKOUT, timeout))

    def add(self, path: str) -> None:
        self.launch("add", path)

    def rm(self, path: str) -> None:
        self.launch("rm", path)

    def commit(
        self,
        message: str,
        allow_empty: bool,
        author: Optional[Identity],
        committer: Optional[Identity],
    ) -> None:
        env = {}
        if author is not None:
            env["GIT_AUTHOR_NAME"] = author.name
            env["GIT_AUTHOR_EMAIL"] = author.email
        if committer is not None:
            env["GIT_COMMITTER_NAME"] = committer.name
            env["GIT_COMMITTER_EMAIL"] = committer.email
        args = ["commit"]
        if allow_empty:
            args.append("--allow-empty")
        args.extend(["-m", message])
        self.launch(*args, env=env)

    def tag(self, name: str, message: Optional[str], force: bool) -> None:
        args = ["tag"]
        if force:
            args.append("--force")
        if message:
            args.extend(["-a", "-m", message])
        args.append(name)
        self.launch(*args)

    def push(
        self, remote: str, refspec: str, force: bool, timeout: Optional[int] = None
    ) -> None:
        args = ["push"]
        if force:
            args.append("--force")
        args.extend([remote, refspec])
        self.launch(*args, timeout=self._generic_timeout(timeout))

    def _has_head(self) -> bool:
        return self.launch("rev-parse", "--verify", "-q", "HEAD", check=False).ok

    def reset(self, hard: bool) -> None:
        if not self._has_head():
            logger.debug(f"No valid HEAD in {self.work_tree}, nothing to reset")
            return
        self.launch("reset", "--hard" if hard else "--mixed")

    def rev_parse(self, rev: str) -> ObjectId:
        result = self.launch("rev-parse", f"{rev}^{{commit}}")
        line = result.output.strip().splitlines()[0] if result.output.strip() else ""
        if not ObjectId.is_valid(line):
            raise OperationFailedError(
                f"Unexpected rev-parse output for {rev}: {result.output!r}",
                command=f"git rev-parse {rev}",
                output=result.output,
            )
        return ObjectId.from_string(line)

    def changelog(
        self, rev_from: Optional[str], rev_to: str, max_count: Optional[int]
    ) -> str:
        args = ["log", "--raw", "--no-abbrev", "-M", "--format=raw", "--no-color"]
        if max_count is not None:
            args.append(f"-n{max_count}")
        args.append(f"{rev_from}..{rev_to}" if rev_from else rev_to)
        args.append("--")
        return self.launch(*args).output

    def show_revision(self, rev: str) -> List[str]:
        result = self.launch(
            "log", "--raw", "--no-abbrev", "-M", "--format=raw", "--no-color", "-1", rev, "--"
        )
        return result.output.splitlines()

    def ls_tree(self, treeish: str, recursive: bool) -> List[TreeEntry]:
        args = ["ls-tree"]
        if recursive:
            args.append("-r")
        args.append(treeish)
        entries = []
        for line in self.launch(*args).output.splitlines():
            meta, sep, path = line.partition("\t")
            fields = meta.split()
            if not sep or len(fields) != 3:
                continue
            mode, object_type, sha = fields
            entries.append(TreeEntry(mode=mode, type=object_type, object=sha, path=path))
        return entries

    # configuration and remotes

    def get_config(self, key: str) -> Optional[str]:
        result = self.launch("config", "--get", key, check=False)
        if result.status == 1:
            return None
        if not result.ok:
            raise OperationFailedError.from_command(
                f"{self.display_name} config --get {key}",
                result.status,
                result.output,
                result.error,
            )
        return result.output.strip()

    def set_config(self, key: str, value: str) -> None:
        self.launch("config", key, value)

    def remote_names(self) -> List[str]:
        result = self.launch(
            "config", "--get-regexp", r"^remote\..*\.url$", check=False
        )
        names = []
        for line in result.output.splitlines():
            key = line.split(" ", 1)[0]
            match = _REMOTE_URL_KEY_RE.match(key)
            if match and match.group(1) not in names:
                names.append(match.group(1))
        return names

    def add_remote(self, name: str, url: str) -> None:
        self.launch("remote", "add", name, url)

    # remote references

    def list_remote_references(
        self, url: str, pattern: Optional[str], heads_only: bool, tags_only: bool
    ) -> Dict[str, ObjectId]:
        args = ["ls-remote"]
        if heads_only and not tags_only:
            args.append("-h")
        elif tags_only and not heads_only:
            args.append("-t")
        args.append(url)
        if pattern:
            args.extend(qualify(pattern, namespaces(heads_only, tags_only)))
        result = self.launch(
            *args, cwd=self.existing_directory(), timeout=self._generic_timeout()
        )
        return parse_ls_remote(result.output)

    def list_remote_symbolic_references(self, url: str) -> Dict[str, str]:
        result = self.launch(
            "ls-remote",
            "--symref",
            url,
            "HEAD",
            cwd=self.existing_directory(),
            timeout=self._generic_timeout(),
        )
        return parse_symbolic_refs(result.output)

    # submodules

    def add_submodule(self, url: str, path: str) -> None:
        self.launch(
            "submodule", "add", url, path, env=self._file_protocol_env(),
            timeout=self._generic_timeout(),
        )

    def submodule_init(self, recursive: bool) -> None:
        self.launch("submodule", "init")
        if recursive:
            self.launch(
                "submodule", "foreach", "--quiet", "--recursive", "git submodule init"
            )

    def _gitlinks(self) -> Dict[str, ObjectId]:
        """Submodule commits recorded in the index, keyed by path."""
        gitlinks = {}
        result = self.launch("ls-files", "--stage", check=False)
        for line in result.output.splitlines():
            meta, sep, path = line.partition("\t")
            fields = meta.split()
            if sep and len(fields) == 3 and fields[0] == GITLINK_MODE:
                gitlinks[path] = ObjectId.from_string(fields[1])
        return gitlinks

    def submodules(self) -> List[SubmoduleRecord]:
        if not (self.work_tree / ".gitmodules").is_file():
            return []
        result = self.launch(
            "config",
            "-f",
            ".gitmodules",
            "--get-regexp",
            r"^submodule\..*\.(path|url|branch)$",
            check=False,
        )
        values: Dict[str, Dict[str, str]] = {}
        for line in result.output.splitlines():
            key, _, value = line.partition(" ")
            match = _SUBMODULE_KEY_RE.match(key)
            if match:
                values.setdefault(match.group(1), {})[match.group(2)] = value.strip()

        gitlinks = self._gitlinks()
        records = []
        for name, entry in values.items():
            path = entry.get("path", name)
            records.append(
                SubmoduleRecord(
                    name=name,
                    path=path,
                    url=entry.get("url", ""),
                    pinned=gitlinks.get(path),
                    branch=entry.get("branch"),
                )
            )
        return records

    def submodule_update(self, command: "SubmoduleUpdateCommand") -> None:
        timeout = self.timeout_for(
            TimeoutCategory.SUBMODULE_UPDATE, command.timeout_seconds
        )
        for name, branch in command.branches.items():
            self.set_config(f"submodule.{name}.branch", branch)

        for record in self.submodules():
            if record.pinned is None:
                logger.debug(f"Submodule {record.name} has no gitlink, skipping")
                continue
            args = ["submodule", "update", "--init"]
            if command.is_recursive:
                args.append("--recursive")
            if command.is_remote_tracking:
                args.append("--remote")
            if command.reference_path:
                args.extend(["--reference", command.reference_path])
            args.append(record.path)
            self.launch(*args, timeout=timeout, env=self._file_protocol_env())

    def fix_submodule_urls(self, remote: str) -> None:
        remote_url = self.get_config(f"remote.{remote}.url")
        if not remote_url:
            raise OperationFailedError(
                f"Could not determine remote {remote}: remote.{remote}.url is not defined"
            )
        local_origin = Path(remote_url)
        origin_has_work_tree = local_origin.is_dir() and (local_origin / ".git").exists()

        for record in self.submodules():
            if record.url.startswith(("./", "../")):
                url = posixpath.normpath(posixpath.join(remote_url, record.url))
            elif origin_has_work_tree:
                url = posixpath.join(remote_url, record.path)
            else:
                continue
            logger.info(f"Submodule {record.name} url {record.url} -> {url}")
            self.set_config(f"submodule.{record.name}.url", url)

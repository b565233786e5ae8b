"""
Library backend built on dulwich.

Everything runs in-process, so there is no child process to kill: timeouts
are accepted and ignored. Operations dulwich has no counterpart for raise
UnsupportedOperationError.
"""

import logging
import posixpath
import stat
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Dict, Iterator, List, Optional, Sequence, Tuple

from dulwich import porcelain
from dulwich.client import get_transport_and_path
from dulwich.config import ConfigDict, ConfigFile, StackedConfig, read_submodules
from dulwich.diff_tree import tree_changes
from dulwich.errors import GitProtocolError, NotGitRepository
from dulwich.graph import can_fast_forward
from dulwich.objects import S_IFGITLINK, Commit, format_timezone
from dulwich.objectspec import parse_commit, parse_tree
from dulwich.repo import Repo

from gitclient.backends.base import GitBackend
from gitclient.config import Identity
from gitclient.exceptions import GitClientError, OperationFailedError
from gitclient.model import (
    Capability,
    ObjectId,
    RepositoryHandle,
    SubmoduleRecord,
    TreeEntry,
    has_timeout,
)
from gitclient.refs import HEADS, TAGS, refs_from_dulwich

if TYPE_CHECKING:
    from gitclient.commands import SubmoduleUpdateCommand

logger = logging.getLogger(__name__)

NULL_SHA = "0" * 40

_CHANGE_STATUS = {
    "add": "A",
    "delete": "D",
    "modify": "M",
    "rename": "R100",
    "copy": "C100",
}


def _split_key(key: str) -> Tuple[Tuple[bytes, ...], bytes]:
    """``remote.origin.url`` -> ``((b"remote", b"origin"), b"url")``"""
    section, _, name = key.rpartition(".")
    if not section:
        raise GitClientError(f"Invalid config key: {key}")
    head, _, subsection = section.partition(".")
    if subsection:
        return (head.encode(), subsection.encode()), name.encode()
    return (head.encode(),), name.encode()


def _decode(value: bytes, encoding: Optional[bytes] = None) -> str:
    return value.decode(encoding.decode("ascii") if encoding else "utf-8", errors="replace")


class DulwichBackend(GitBackend):
    name = "dulwich"
    capabilities = frozenset(
        {Capability.TRACKING_SUBMODULES, Capability.SYMBOLIC_REFERENCES}
    )

    def _ignore_timeout(self, operation: str, timeout: Optional[int]) -> None:
        if has_timeout(timeout):
            logger.debug(f"{operation}: timeout={timeout} has no effect with dulwich")

    @contextmanager
    def _repository(self, operation: str) -> Iterator[Repo]:
        """Open the repository and translate dulwich failures."""
        try:
            repo = Repo(str(self.work_tree))
        except NotGitRepository as e:
            raise OperationFailedError(
                f"{operation} failed: not a git repository: {self.work_tree}"
            ) from e
        with repo:
            try:
                yield repo
            except GitClientError:
                raise
            except (GitProtocolError, porcelain.Error, KeyError, OSError) as e:
                raise OperationFailedError(f"{operation} failed: {e}") from e

    def _child(self, path: Path) -> "DulwichBackend":
        return DulwichBackend(
            RepositoryHandle.discover(path), self.settings, self.listener, self.env
        )

    # transport

    def _transport_config(self) -> StackedConfig:
        config = StackedConfig.default()
        if self.settings.proxy is not None:
            proxy = ConfigDict()
            proxy.set((b"http",), b"proxy", self.settings.proxy.url.encode())
            config = StackedConfig([proxy] + list(config.backends))
        return config

    def _transport(self, url: str):
        client, path = get_transport_and_path(url, config=self._transport_config())
        return client, path.encode() if isinstance(path, str) else path

    def _remote_url(self, repo: Repo, remote: str, push: bool = False) -> str:
        config = repo.get_config()
        section = (b"remote", remote.encode())
        if push:
            try:
                return config.get(section, b"pushurl").decode()
            except KeyError:
                pass
        try:
            return config.get(section, b"url").decode()
        except KeyError:
            # Not a configured remote; treat the name as a location
            return remote

    # repository lifecycle

    def init(self, workspace: Path, bare: bool) -> None:
        workspace.mkdir(parents=True, exist_ok=True)
        try:
            repo = porcelain.init(str(workspace), bare=bare)
        except OSError as e:
            raise OperationFailedError(f"init failed: {e}") from e
        with repo:
            branch = HEADS + self.settings.default_branch
            repo.refs.set_symbolic_ref(b"HEAD", branch.encode())

    def clone(
        self,
        url: str,
        remote: str,
        reference: Optional[str],
        mirror: bool,
        timeout: Optional[int] = None,
    ) -> None:
        self._ignore_timeout("clone", timeout)
        destination = self.work_tree
        destination.mkdir(parents=True, exist_ok=True)
        if mirror:
            repo = Repo.init_bare(str(destination))
        else:
            repo = Repo.init(str(destination))
        with repo:
            # Kept when the source is empty and has no HEAD to follow
            branch = HEADS + self.settings.default_branch
            repo.refs.set_symbolic_ref(b"HEAD", branch.encode())
            if reference:
                objects = RepositoryHandle.discover(reference).git_dir / "objects"
                if objects.is_dir():
                    repo.object_store.add_alternate_path(str(objects))
                else:
                    self.listener.warning(f"Reference path does not exist: {reference}")

            config = repo.get_config()
            section = (b"remote", remote.encode())
            config.set(section, b"url", url.encode())
            if mirror:
                config.set(section, b"fetch", b"+refs/*:refs/*")
                config.set(section, b"mirror", True)
            else:
                config.set(
                    section,
                    b"fetch",
                    f"+refs/heads/*:refs/remotes/{remote}/*".encode(),
                )
            config.write_to_path()

            try:
                result = self._fetch_pack(repo, url)
            except (GitProtocolError, NotGitRepository, OSError) as e:
                raise OperationFailedError(f"clone of {url} failed: {e}") from e

            if mirror:
                self._import_mirror_refs(repo, result)
                return
            self._import_remote_refs(repo, remote, result, ())
            self._checkout_remote_head(repo, remote, result)

    def _checkout_remote_head(self, repo: Repo, remote: str, result) -> None:
        target = (result.symrefs or {}).get(b"HEAD")
        if target is None or not target.startswith(HEADS.encode()):
            logger.debug("Remote has no HEAD, leaving the new repository empty")
            return
        branch = target[len(HEADS) :]
        sha = result.refs.get(target)
        if sha is None:
            return
        repo.refs[target] = sha
        repo.refs.set_symbolic_ref(b"HEAD", target)
        config = repo.get_config()
        config.set((b"branch", branch), b"remote", remote.encode())
        config.set((b"branch", branch), b"merge", target)
        config.write_to_path()
        porcelain.reset(repo, "hard", sha)

    def has_git_repo(self) -> bool:
        if not self.handle.exists():
            return False
        try:
            with Repo(str(self.work_tree)):
                return True
        except NotGitRepository:
            return False

    # fetching

    def _fetch_pack(self, repo: Repo, url: str):
        client, path = self._transport(url)
        return client.fetch(path, repo)

    @staticmethod
    def _apply_refspec(refspec: str, name: str) -> Optional[str]:
        source, _, destination = refspec.lstrip("+").partition(":")
        if "*" in source:
            prefix, _, suffix = source.partition("*")
            if name.startswith(prefix) and name.endswith(suffix):
                matched = name[len(prefix) : len(name) - len(suffix)]
                return destination.replace("*", matched) if destination else None
            return None
        if name == source:
            return destination or None
        return None

    def _import_remote_refs(
        self, repo: Repo, remote: str, result, refspecs: Sequence[str]
    ) -> None:
        for name, object_id in refs_from_dulwich(result.refs).items():
            targets = []
            if refspecs:
                targets = [self._apply_refspec(spec, name) for spec in refspecs]
            elif name.startswith(HEADS):
                targets = [f"refs/remotes/{remote}/{name[len(HEADS):]}"]
            if name.startswith(TAGS):
                targets.append(name)
            for target in targets:
                if target:
                    repo.refs[target.encode()] = object_id.sha.encode()

        head = (result.symrefs or {}).get(b"HEAD")
        if head is not None and head.startswith(HEADS.encode()):
            branch = head[len(HEADS) :].decode()
            repo.refs.set_symbolic_ref(
                f"refs/remotes/{remote}/HEAD".encode(),
                f"refs/remotes/{remote}/{branch}".encode(),
            )

    def _import_mirror_refs(self, repo: Repo, result) -> None:
        for name, object_id in refs_from_dulwich(result.refs).items():
            if name == "HEAD":
                continue
            repo.refs[name.encode()] = object_id.sha.encode()
        head = (result.symrefs or {}).get(b"HEAD")
        if head is not None:
            repo.refs.set_symbolic_ref(b"HEAD", head)

    def fetch(
        self, remote: str, refspecs: Sequence[str], timeout: Optional[int] = None
    ) -> None:
        self._ignore_timeout("fetch", timeout)
        with self._repository("fetch") as repo:
            url = self._remote_url(repo, remote)
            result = self._fetch_pack(repo, url)
            mirror = repo.get_config().get_boolean((b"remote", remote.encode()), b"mirror", False)
            if mirror:
                self._import_mirror_refs(repo, result)
            else:
                self._import_remote_refs(repo, remote, result, refspecs)

    # working tree and history

    def checkout(
        self, ref: str, branch: Optional[str], timeout: Optional[int] = None
    ) -> None:
        self._ignore_timeout("checkout", timeout)
        with self._repository("checkout") as repo:
            commit = parse_commit(repo, ref.encode())
            if branch:
                repo.refs[(HEADS + branch).encode()] = commit.id
                target = branch
            elif (HEADS + ref).encode() in repo.refs:
                target = ref
            else:
                target = commit.id.decode()
            porcelain.checkout(repo, target, force=True)

    def add(self, path: str) -> None:
        with self._repository("add") as repo:
            porcelain.add(repo, paths=[str(self.work_tree / path)])

    def rm(self, path: str) -> None:
        with self._repository("rm") as repo:
            porcelain.remove(repo, paths=[str(self.work_tree / path)])

    def commit(
        self,
        message: str,
        allow_empty: bool,
        author: Optional[Identity],
        committer: Optional[Identity],
    ) -> None:
        with self._repository("commit") as repo:
            if not allow_empty and not self._has_staged_changes(repo):
                raise OperationFailedError("nothing to commit, working tree clean")
            porcelain.commit(
                repo,
                message=message.encode("utf-8"),
                author=str(author).encode("utf-8") if author else None,
                committer=str(committer).encode("utf-8") if committer else None,
            )

    @staticmethod
    def _has_staged_changes(repo: Repo) -> bool:
        index_tree = repo.open_index().commit(repo.object_store)
        try:
            head = repo[repo.head()]
        except KeyError:
            return len(repo.open_index()) > 0
        return head.tree != index_tree

    def tag(self, name: str, message: Optional[str], force: bool) -> None:
        with self._repository("tag") as repo:
            if not force and (TAGS + name).encode() in repo.refs:
                raise OperationFailedError(f"tag '{name}' already exists")
            porcelain.tag_create(
                repo,
                name.encode("utf-8"),
                message=message.encode("utf-8") if message else None,
                annotated=bool(message),
            )

    def push(
        self, remote: str, refspec: str, force: bool, timeout: Optional[int] = None
    ) -> None:
        self._ignore_timeout("push", timeout)
        force = force or refspec.startswith("+")
        source, _, destination = refspec.lstrip("+").partition(":")
        with self._repository("push") as repo:
            url = self._remote_url(repo, remote, push=True)
            local_sha = parse_commit(repo, source.encode()).id
            if destination:
                target = destination if destination.startswith("refs/") else HEADS + destination
            else:
                target = source if source.startswith("refs/") else HEADS + source
            target_ref = target.encode()

            def update_refs(refs):
                current = refs.get(target_ref)
                if current and current != local_sha and not force:
                    try:
                        fast_forward = can_fast_forward(repo, current, local_sha)
                    except KeyError:
                        fast_forward = False
                    if not fast_forward:
                        raise OperationFailedError(
                            f"push of {target} to {url} rejected (non-fast-forward)"
                        )
                return {target_ref: local_sha}

            def generate_pack_data(have, want, *, ofs_delta=False, progress=None):
                return repo.generate_pack_data(
                    set(have), set(want), progress=progress, ofs_delta=ofs_delta
                )

            client, path = self._transport(url)
            result = client.send_pack(
                path, update_refs, generate_pack_data=generate_pack_data
            )
            for ref, error in (result.ref_status or {}).items():
                if error is not None:
                    raise OperationFailedError(
                        f"push of {ref.decode()} to {url} failed: {error}"
                    )

    def reset(self, hard: bool) -> None:
        with self._repository("reset") as repo:
            try:
                repo.head()
            except KeyError:
                logger.debug(f"No valid HEAD in {self.work_tree}, nothing to reset")
                return
            porcelain.reset(repo, "hard" if hard else "mixed")

    def rev_parse(self, rev: str) -> ObjectId:
        with self._repository("rev-parse") as repo:
            return ObjectId.from_bytes(parse_commit(repo, rev.encode()).id)

    def _format_commit(self, repo: Repo, commit: Commit) -> List[str]:
        """Render a commit like ``git log --raw --no-abbrev --format=raw``."""
        encoding = commit.encoding
        lines = [
            f"commit {commit.id.decode()}",
            f"tree {commit.tree.decode()}",
        ]
        lines.extend(f"parent {parent.decode()}" for parent in commit.parents)
        lines.append(
            f"author {_decode(commit.author, encoding)} {commit.author_time} "
            f"{format_timezone(commit.author_timezone).decode()}"
        )
        lines.append(
            f"committer {_decode(commit.committer, encoding)} {commit.commit_time} "
            f"{format_timezone(commit.commit_timezone).decode()}"
        )
        lines.append("")
        lines.extend(
            "    " + line for line in _decode(commit.message, encoding).rstrip("\n").split("\n")
        )

        parent_tree = repo[commit.parents[0]].tree if commit.parents else None
        changes = []
        for change in tree_changes(repo.object_store, parent_tree, commit.tree):
            old, new = change.old, change.new
            old_path = old.path.decode("utf-8", "replace") if old and old.path else None
            new_path = new.path.decode("utf-8", "replace") if new and new.path else None
            old_mode = old.mode if old and old.mode else 0
            new_mode = new.mode if new and new.mode else 0
            old_sha = old.sha.decode() if old and old.sha else NULL_SHA
            new_sha = new.sha.decode() if new and new.sha else NULL_SHA
            status = _CHANGE_STATUS.get(change.type, "M")
            paths = old_path or new_path
            if change.type in ("rename", "copy"):
                paths = f"{old_path}\t{new_path}"
            changes.append(
                f":{old_mode:06o} {new_mode:06o} {old_sha} {new_sha} {status}\t{paths}"
            )
        if changes:
            lines.append("")
            lines.extend(changes)
        lines.append("")
        return lines

    def changelog(
        self, rev_from: Optional[str], rev_to: str, max_count: Optional[int]
    ) -> str:
        with self._repository("changelog") as repo:
            include = [parse_commit(repo, rev_to.encode()).id]
            exclude = [parse_commit(repo, rev_from.encode()).id] if rev_from else []
            walker = repo.get_walker(
                include=include, exclude=exclude, max_entries=max_count
            )
            lines: List[str] = []
            for entry in walker:
                lines.extend(self._format_commit(repo, entry.commit))
            return "\n".join(lines) + ("\n" if lines else "")

    def show_revision(self, rev: str) -> List[str]:
        with self._repository("show-revision") as repo:
            return self._format_commit(repo, parse_commit(repo, rev.encode()))

    def ls_tree(self, treeish: str, recursive: bool) -> List[TreeEntry]:
        with self._repository("ls-tree") as repo:
            entries: List[TreeEntry] = []

            def walk(tree, prefix: str) -> None:
                for item in tree.iteritems():
                    path = posixpath.join(prefix, item.path.decode("utf-8"))
                    if stat.S_ISDIR(item.mode):
                        if recursive:
                            walk(repo[item.sha], path)
                            continue
                        object_type = "tree"
                    elif item.mode == S_IFGITLINK:
                        object_type = "commit"
                    else:
                        object_type = "blob"
                    entries.append(
                        TreeEntry(
                            mode=f"{item.mode:06o}",
                            type=object_type,
                            object=item.sha.decode(),
                            path=path,
                        )
                    )

            walk(parse_tree(repo, treeish.encode()), "")
            return entries

    # configuration and remotes

    def get_config(self, key: str) -> Optional[str]:
        section, name = _split_key(key)
        with self._repository("config") as repo:
            try:
                value = repo.get_config_stack().get(section, name)
            except KeyError:
                return None
            return value.decode("utf-8") if isinstance(value, bytes) else str(value)

    def set_config(self, key: str, value: str) -> None:
        section, name = _split_key(key)
        with self._repository("config") as repo:
            config = repo.get_config()
            config.set(section, name, value.encode("utf-8"))
            config.write_to_path()

    def remote_names(self) -> List[str]:
        with self._repository("remote") as repo:
            config = repo.get_config()
            names = []
            for section in config.sections():
                if len(section) != 2 or section[0].lower() != b"remote":
                    continue
                if not config.has_section(section):
                    continue
                try:
                    config.get(section, b"url")
                except KeyError:
                    continue
                name = section[1].decode("utf-8")
                if name not in names:
                    names.append(name)
            return names

    def add_remote(self, name: str, url: str) -> None:
        with self._repository("remote add") as repo:
            porcelain.remote_add(repo, name, url)

    # remote references

    def _ls_remote(self, url: str):
        client, path = self._transport(url)
        try:
            return client.get_refs(path)
        except (GitProtocolError, NotGitRepository, OSError) as e:
            raise OperationFailedError(f"ls-remote {url} failed: {e}") from e

    def list_remote_references(
        self, url: str, pattern: Optional[str], heads_only: bool, tags_only: bool
    ) -> Dict[str, ObjectId]:
        return refs_from_dulwich(self._ls_remote(url).refs)

    def list_remote_symbolic_references(self, url: str) -> Dict[str, str]:
        symrefs = self._ls_remote(url).symrefs or {}
        return {name.decode(): target.decode() for name, target in symrefs.items()}

    # submodules

    def _resolve_submodule_url(self, url: str) -> str:
        if not url.startswith(("./", "../")):
            return url
        base = self.get_config("remote.origin.url") or str(self.work_tree)
        return posixpath.normpath(posixpath.join(base, url))

    def add_submodule(self, url: str, path: str) -> None:
        with self._repository("submodule add") as repo:
            porcelain.submodule_add(repo, url, path)
        self._child(self.work_tree / path).clone(
            self._resolve_submodule_url(url), "origin", None, False
        )
        with self._repository("submodule add") as repo:
            repo.get_worktree().stage([path, ".gitmodules"])

    def submodule_init(self, recursive: bool) -> None:
        if not (self.work_tree / ".gitmodules").is_file():
            return
        with self._repository("submodule init") as repo:
            porcelain.submodule_init(repo)
        if recursive:
            for record in self.submodules():
                child = self._child(self.work_tree / record.path)
                if child.has_git_repo():
                    child.submodule_init(recursive)

    def _gitlinks(self, repo: Repo) -> Dict[str, ObjectId]:
        index = repo.open_index()
        gitlinks = {}
        for path in index:
            entry = index[path]
            if getattr(entry, "mode", None) == S_IFGITLINK:
                gitlinks[path.decode("utf-8")] = ObjectId.from_bytes(entry.sha)
        return gitlinks

    def submodules(self) -> List[SubmoduleRecord]:
        gitmodules = self.work_tree / ".gitmodules"
        if not gitmodules.is_file():
            return []
        config = ConfigFile.from_path(str(gitmodules))
        with self._repository("submodules") as repo:
            gitlinks = self._gitlinks(repo)
        records = []
        for path, url, name in read_submodules(str(gitmodules)):
            try:
                branch: Optional[str] = config.get((b"submodule", name), b"branch").decode()
            except KeyError:
                branch = None
            records.append(
                SubmoduleRecord(
                    name=name.decode("utf-8"),
                    path=path.decode("utf-8"),
                    url=url.decode("utf-8"),
                    pinned=gitlinks.get(path.decode("utf-8")),
                    branch=branch,
                )
            )
        return records

    def submodule_update(self, command: "SubmoduleUpdateCommand") -> None:
        self._ignore_timeout("submodule update", command.timeout_seconds)
        for name, branch in command.branches.items():
            self.set_config(f"submodule.{name}.branch", branch)
        for record in self.submodules():
            if record.pinned is None:
                logger.debug(f"Submodule {record.name} has no gitlink, skipping")
                continue
            self._update_submodule(record, command)

    def _tracked_branch(self, record: SubmoduleRecord, child: "DulwichBackend") -> str:
        configured = self.get_config(f"submodule.{record.name}.branch") or record.branch
        if configured:
            return configured
        remote_head = child.get_symbolic_ref("refs/remotes/origin/HEAD")
        if remote_head and remote_head.startswith("refs/remotes/origin/"):
            return remote_head[len("refs/remotes/origin/") :]
        return self.settings.default_branch

    def get_symbolic_ref(self, name: str) -> Optional[str]:
        with self._repository("symbolic-ref") as repo:
            try:
                target = repo.refs.get_symrefs().get(name.encode())
            except KeyError:
                return None
            return target.decode() if target else None

    def _update_submodule(
        self, record: SubmoduleRecord, command: "SubmoduleUpdateCommand"
    ) -> None:
        url = self.get_config(f"submodule.{record.name}.url") or record.url
        url = self._resolve_submodule_url(url)
        child = self._child(self.work_tree / record.path)
        if not child.has_git_repo():
            self.listener.info(f"Cloning submodule {record.name} from {url}")
            child.clone(url, "origin", command.reference_path, False)

        if command.is_remote_tracking:
            child.fetch("origin", ())
            branch = self._tracked_branch(record, child)
            target = child.rev_parse(f"refs/remotes/origin/{branch}")
        else:
            target = record.pinned
            with child._repository("submodule update") as repo:
                missing = target.sha.encode() not in repo.object_store
            if missing:
                child.fetch("origin", ())

        with child._repository("submodule update") as repo:
            porcelain.reset(repo, "hard", target.sha.encode())

        if command.is_recursive:
            child.submodule_update(command)

import io

import pytest

from gitclient.client import create_client
from gitclient.exceptions import InvalidArgumentError, OperationFailedError
from gitclient.model import Capability, ObjectId, RemoteConfig

FIXED_CONTENT_BLOB = "3f5a898e0c8ea62362dbf359cf1a400f3cfd46ae"


def _commit(area, name, content, message):
    area.touch(name, content)
    area.client.add(name)
    area.client.commit(message)
    return str(area.client.rev_parse("HEAD"))


@pytest.mark.short
class TestLifecycle:
    def test_init_creates_missing_directory(self, tmp_path, backend, settings):
        target = tmp_path / "a" / "b"
        client = create_client(target, backend=backend, settings=settings)
        assert not client.has_git_repo()
        client.init()
        assert target.is_dir()
        assert client.has_git_repo()
        assert not client.handle.bare

    def test_init_bare(self, make_area):
        area = make_area("bare").init(bare=True)
        assert area.client.has_git_repo()
        assert area.client.handle.bare
        assert area.git.rev_parse("--is-bare-repository") == "true"

    def test_init_uses_default_branch(self, area, default_branch):
        assert area.git.symbolic_ref("HEAD") == f"refs/heads/{default_branch}"

    def test_empty_directory_has_no_repository(self, make_area):
        assert not make_area("empty").client.has_git_repo()

    def test_backend_name(self, area, backend):
        assert area.client.backend_name == backend
        assert backend in repr(area.client)

    def test_unknown_backend(self, tmp_path, settings):
        with pytest.raises(InvalidArgumentError, match="backend"):
            create_client(tmp_path, backend="svn", settings=settings)


@pytest.mark.short
class TestCommits:
    def test_commit_and_rev_parse(self, area):
        sha = _commit(area, "file1", "content", "first commit")
        assert sha == area.head()
        assert area.git.log("-1", "--format=%an <%ae>") == "Test User <test@example.com>"
        assert area.status() == []

    def test_nothing_to_commit(self, area):
        _commit(area, "file1", "content", "first commit")
        with pytest.raises(OperationFailedError):
            area.client.commit("nothing changed")

    def test_allow_empty(self, area):
        first = _commit(area, "file1", "content", "first commit")
        area.client.commit("empty", allow_empty=True)
        assert area.head() != first
        assert area.head("HEAD~1") == first

    def test_explicit_author(self, area):
        area.client.set_author("Jane Doe", "jane@example.com")
        _commit(area, "file1", "content", "first commit")
        assert area.git.log("-1", "--format=%an") == "Jane Doe"

    def test_rm(self, area):
        _commit(area, "file1", "content", "first commit")
        area.client.rm("file1")
        assert not (area.root / "file1").exists()
        assert area.status() == ["D  file1"]

    def test_tag(self, area):
        sha = _commit(area, "file1", "one", "first commit")
        area.client.tag("v1")
        assert str(area.client.rev_parse("v1")) == sha

    def test_existing_tag_needs_force(self, area):
        _commit(area, "file1", "one", "first commit")
        area.client.tag("v1")
        second = _commit(area, "file1", "two", "second commit")
        with pytest.raises(OperationFailedError):
            area.client.tag("v1")
        area.client.tag("v1", force=True)
        assert str(area.client.rev_parse("v1")) == second

    def test_annotated_tag(self, area):
        _commit(area, "file1", "one", "first commit")
        area.client.tag("v2", message="release two")
        assert area.git.cat_file("-t", "v2") == "tag"

    def test_checkout_new_branch(self, area):
        first = _commit(area, "file1", "one", "first commit")
        _commit(area, "file1", "two", "second commit")
        area.client.checkout(first, branch="old")
        assert area.head() == first
        assert area.git.symbolic_ref("HEAD") == "refs/heads/old"
        assert (area.root / "file1").read_text() == "one"

    def test_checkout_detached(self, area):
        first = _commit(area, "file1", "one", "first commit")
        _commit(area, "file1", "two", "second commit")
        area.client.checkout_().ref(first).execute()
        assert area.head() == first
        assert (area.root / "file1").read_text() == "one"

    def test_checkout_needs_ref(self, area):
        with pytest.raises(InvalidArgumentError):
            area.client.checkout_().execute()

    def test_rev_parse_unknown(self, area):
        _commit(area, "file1", "one", "first commit")
        with pytest.raises(OperationFailedError):
            area.client.rev_parse("no-such-revision")

    @pytest.mark.parametrize("call", ["add", "rm", "checkout", "rev_parse", "tag"])
    def test_blank_arguments(self, area, call):
        with pytest.raises(InvalidArgumentError):
            getattr(area.client, call)("  ")


@pytest.mark.short
class TestReset:
    def test_hard_restores_tracked_files(self, area):
        _commit(area, "file1", "one", "first commit")
        area.touch("file1", "changed")
        area.client.add("file1")
        area.client.reset(hard=True)
        assert (area.root / "file1").read_text() == "one"
        assert area.status() == []

    def test_soft_keeps_working_tree(self, area):
        _commit(area, "file1", "one", "first commit")
        area.touch("file1", "changed")
        area.client.add("file1")
        area.client.reset()
        assert (area.root / "file1").read_text() == "changed"
        assert area.status() == [" M file1"]

    @pytest.fixture
    def staged(self, area):
        _commit(area, "tracked", "tracked", "first commit")
        area.client.rm("tracked")
        area.touch("added", "added")
        area.client.add("added")
        area.touch("untracked", "untracked")
        return area

    def test_soft_with_deleted_and_added_files(self, staged):
        staged.client.reset()
        assert not (staged.root / "tracked").exists()
        assert (staged.root / "added").read_text() == "added"
        assert sorted(staged.status()) == [" D tracked", "?? added", "?? untracked"]

    def test_hard_with_deleted_and_added_files(self, staged):
        staged.client.reset(hard=True)
        assert (staged.root / "tracked").read_text() == "tracked"
        assert not (staged.root / "added").exists()
        assert (staged.root / "untracked").read_text() == "untracked"
        assert staged.status() == ["?? untracked"]

    @pytest.mark.parametrize("hard", [False, True])
    def test_without_head(self, area, hard):
        area.touch("file1", "one")
        area.client.add("file1")
        area.client.reset(hard=hard)
        assert (area.root / "file1").read_text() == "one"
        assert area.status() == ["A  file1"]


@pytest.mark.short
class TestHistory:
    @pytest.fixture
    def history(self, area):
        area.first = _commit(area, "file1", "first", "first commit")
        area.client.tag("v0")
        _commit(area, "file1", "second", "deuxième révision ✓")
        area.touch("file2", "new")
        area.client.add("file2")
        area.client.commit("третий коммит, 你好 (nǐ hǎo)")
        area.client.tag("vLast")
        return area

    def test_changelog_range(self, history):
        text = history.client.changelog("v0", "vLast")
        assert "deuxième révision ✓" in text
        assert "    третий коммит, 你好 (nǐ hǎo)" in text.splitlines()
        assert "first commit" not in text
        assert f"commit {history.head()}" in text
        assert "M\tfile1" in text
        assert "A\tfile2" in text

    def test_changelog_max_count(self, history):
        text = history.client.changelog(None, "vLast", max_count=1)
        commits = [line for line in text.splitlines() if line.startswith("commit ")]
        assert commits == [f"commit {history.head()}"]

    def test_changelog_to_stream(self, history):
        out = io.StringIO()
        text = history.client.changelog_().excludes("v0").includes("vLast").max(5).to(out).execute()
        assert out.getvalue() == text
        assert text.count("\ncommit ") + text.startswith("commit ") == 2

    def test_negative_max_count(self, history):
        with pytest.raises(InvalidArgumentError):
            history.client.changelog("v0", "vLast", max_count=-1)

    def test_show_revision(self, history):
        lines = history.client.show_revision(history.first)
        assert lines[0] == f"commit {history.first}"
        assert "    first commit" in lines
        assert any(line.endswith("A\tfile1") for line in lines)
        assert any(line.startswith("author Test User <test@example.com> ") for line in lines)

    def test_ls_tree(self, area):
        area.touch("dir/nested", "nested")
        _commit(area, "file1", "file1 fixed content", "first commit")
        area.client.add("dir/nested")
        area.client.commit("nested")

        entries = {entry.path: entry for entry in area.client.ls_tree()}
        assert entries["file1"].object == FIXED_CONTENT_BLOB
        assert entries["file1"].mode == "100644"
        assert entries["file1"].type == "blob"
        assert entries["dir"].type == "tree"

        recursive = {entry.path for entry in area.client.ls_tree("HEAD", recursive=True)}
        assert recursive == {"file1", "dir/nested"}


@pytest.mark.short
class TestRemotes:
    def test_default_remote(self, area):
        area.client.add_remote("ndeloof", "https://example.com/ndeloof/repo.git")
        area.client.add_remote("origin", "https://example.com/origin/repo.git")
        assert area.client.get_remote_names() == ["ndeloof", "origin"]
        assert area.client.get_default_remote() == "origin"
        assert area.client.get_default_remote("invalid") == "ndeloof"

    def test_no_remotes(self, area):
        assert area.client.get_remote_names() == []
        assert area.client.get_default_remote() is None
        assert area.client.get_remote_url("origin") is None

    def test_remote_url(self, area):
        area.client.add_remote("origin", "https://example.com/a.git")
        area.client.set_remote_url("origin", "https://example.com/b.git")
        assert area.client.get_remote_url("origin") == "https://example.com/b.git"

    def test_remote_config(self, area):
        area.client.add_remote("origin", "https://example.com/a.git")
        remote = area.client.get_remote_config("origin")
        assert isinstance(remote, RemoteConfig)
        assert remote.url == "https://example.com/a.git"
        assert remote.effective_push_url == remote.url
        assert area.client.get_remote_config("upstream") is None


@pytest.mark.short
class TestCloneFetchPush:
    def test_clone(self, make_area, upstream):
        clone = make_area("clone")
        clone.client.clone(upstream.url)
        assert clone.client.has_git_repo()
        assert clone.head() == upstream.head()
        assert (clone.root / "file1").read_text() == "second"
        assert clone.client.get_remote_url("origin") == upstream.url
        assert str(clone.client.rev_parse("v0")) == upstream.head("v0")

    def test_clone_with_remote_name(self, make_area, upstream):
        clone = make_area("clone")
        clone.client.clone(upstream.url, remote="upstream")
        assert clone.client.get_remote_names() == ["upstream"]

    def test_mirror_clone(self, make_area, upstream, default_branch):
        mirror = make_area("mirror.git")
        mirror.client.clone(upstream.url, mirror=True)
        assert mirror.client.handle.bare
        assert mirror.git.rev_parse("--is-bare-repository") == "true"
        refs = mirror.git.for_each_ref("--format=%(refname)").splitlines()
        assert f"refs/heads/{default_branch}" in refs
        assert "refs/tags/v0" in refs
        assert str(mirror.client.rev_parse("vLast")) == upstream.head()

    def test_reference_clone(self, make_area, upstream):
        clone = make_area("clone")
        clone.client.clone(upstream.url, reference=upstream.url)
        alternates = clone.root / ".git" / "objects" / "info" / "alternates"
        assert alternates.is_file()
        assert clone.head() == upstream.head()

    def test_missing_reference_is_ignored(self, make_area, upstream, tmp_path, capture_logs):
        clone = make_area("clone")
        clone.client.clone(upstream.url, reference=str(tmp_path / "nowhere"))
        assert clone.head() == upstream.head()
        assert "Reference path does not exist" in capture_logs.getvalue()

    def test_clone_failure(self, make_area, tmp_path):
        clone = make_area("clone")
        with pytest.raises(OperationFailedError):
            clone.client.clone(str(tmp_path / "not-a-repository"))

    def test_fetch(self, make_area, upstream, default_branch):
        clone = make_area("clone")
        clone.client.clone(upstream.url)
        new_head = upstream.commit_file("file2", "third", "third commit")
        clone.client.fetch("origin")
        tracking = f"refs/remotes/origin/{default_branch}"
        assert str(clone.client.rev_parse(tracking)) == new_head

    def test_push(self, make_area, area):
        remote = make_area("remote.git").init(bare=True)
        sha = _commit(area, "file1", "one", "first commit")
        area.client.add_remote("origin", remote.url)
        area.client.push("origin", "HEAD:refs/heads/master")
        assert remote.head("refs/heads/master") == sha
        assert area.client.get_head_rev(remote.url, "master") == ObjectId(sha)

    def test_push_with_remote_config(self, make_area, area):
        remote = make_area("remote.git").init(bare=True)
        sha = _commit(area, "file1", "one", "first commit")
        area.client.add_remote("origin", remote.url)
        area.client.push(area.client.get_remote_config("origin"), "HEAD:refs/heads/topic")
        assert remote.head("refs/heads/topic") == sha

    def test_non_fast_forward_push(self, make_area, area):
        remote = make_area("remote.git").init(bare=True)
        _commit(area, "file1", "one", "first commit")
        area.client.add_remote("origin", remote.url)
        area.client.push("origin", "HEAD:refs/heads/master")

        other = make_area("other")
        other.client.clone(remote.url)
        other.client.checkout("refs/remotes/origin/master", branch="master")
        _commit(other, "file2", "theirs", "their commit")
        other.client.push("origin", "HEAD:refs/heads/master")

        _commit(area, "file3", "ours", "our commit")
        with pytest.raises(OperationFailedError):
            area.client.push("origin", "HEAD:refs/heads/master")
        area.client.push("origin", "HEAD:refs/heads/master", force=True)
        assert remote.head("refs/heads/master") == area.head()


@pytest.mark.short
class TestCapabilities:
    def test_process_backend(self, make_area):
        client = make_area("work", backend_name="git").client
        assert all(client.supports(capability) for capability in Capability)

    def test_library_backend(self, make_area):
        client = make_area("work", backend_name="dulwich").client
        assert client.supports(Capability.SYMBOLIC_REFERENCES)
        assert client.supports(Capability.TRACKING_SUBMODULES)
        assert not client.supports(Capability.TIMEOUT_ENFORCEMENT)
        assert not client.supports(Capability.FIX_SUBMODULE_URLS)

import pytest

from gitclient.model import TimeoutCategory

SUBMODULE_PATH = "modules/sub"


def _command_lines(capture_logs, command):
    return [
        line for line in capture_logs.getvalue().splitlines() if line.startswith(f" > git {command}")
    ]


@pytest.fixture
def timed_settings(settings):
    return settings.with_timeout(TimeoutCategory.CHECKOUT, 37).with_timeout(
        TimeoutCategory.SUBMODULE_UPDATE, 41
    )


@pytest.fixture
def repo(make_area, timed_settings):
    area = make_area("timed", backend_name="git", area_settings=timed_settings).init()
    area.first = area.commit_file("file1", "one", "first commit")
    area.commit_file("file1", "two", "second commit")
    return area


@pytest.mark.short
class TestTimeouts:
    def test_checkout_uses_configured_timeout(self, repo, capture_logs, default_branch):
        repo.client.checkout(repo.first)
        repo.client.checkout(default_branch, branch=default_branch)
        lines = _command_lines(capture_logs, "checkout")
        assert len(lines) == 2
        assert all(line.endswith(" # timeout=37") for line in lines)

    def test_explicit_checkout_timeout(self, repo, capture_logs):
        repo.client.checkout_().ref(repo.first).timeout(5).execute()
        (line,) = _command_lines(capture_logs, "checkout")
        assert line == f" > git checkout -f {repo.first} # timeout=5"

    def test_no_timeout(self, make_area, settings, capture_logs):
        area = make_area("plain", backend_name="git").init()
        first = area.commit_file("file1", "one", "first commit")
        area.client.checkout(first)
        (line,) = _command_lines(capture_logs, "checkout")
        assert "# timeout=" not in line

    def test_generic_timeout(self, make_area, upstream, capture_logs):
        clone = make_area("clone", backend_name="git")
        clone.client.clone(upstream.url)
        clone.client.fetch("origin", timeout=9)
        assert _command_lines(capture_logs, "clone")[0].endswith(" # timeout=600")
        assert _command_lines(capture_logs, "fetch")[0].endswith(" # timeout=9")

    def test_submodule_update(self, make_area, repo, capture_logs):
        library = make_area("library", backend_name="git").init()
        library.commit_file("file", "content1", "content1")
        repo.client.add_submodule(library.url, SUBMODULE_PATH)
        repo.client.commit("add submodule")

        repo.client.submodule_update().execute()
        repo.client.submodule_update().timeout(4).execute()
        lines = _command_lines(capture_logs, "submodule update")
        assert len(lines) == 2
        assert lines[0].endswith(" # timeout=41")
        assert lines[1].endswith(" # timeout=4")

    def test_library_backend_ignores_timeouts(self, make_area, timed_settings, capture_logs):
        area = make_area("library-backend", backend_name="dulwich", area_settings=timed_settings)
        area.init()
        first = area.commit_file("file1", "one", "first commit")
        area.client.checkout_().ref(first).timeout(5).execute()
        assert area.head() == first
        assert _command_lines(capture_logs, "checkout") == []

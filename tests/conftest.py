import io
import logging

import pytest

from gitclient.config import ClientSettings, Identity, detect_default_branch
from tests.helpers import TEST_EMAIL, TEST_NAME, WorkingArea

BACKENDS = ["git", "dulwich"]


@pytest.fixture
def capture_logs():
    """Fixture to capture log output during tests."""
    log_stream = io.StringIO()
    handler = logging.StreamHandler(log_stream)
    logger = logging.getLogger("gitclient")
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)

    yield log_stream  # Yield the stream to the test function

    # Cleanup after the test
    logger.removeHandler(handler)
    log_stream.close()


# git fixtures


@pytest.fixture(scope="session")
def default_branch() -> str:
    """Branch name git init uses here; read once per session."""
    return detect_default_branch()


@pytest.fixture(scope="session")
def settings(default_branch) -> ClientSettings:
    identity = Identity(TEST_NAME, TEST_EMAIL)
    return ClientSettings(
        default_branch=default_branch,
        author=identity,
        committer=identity,
        allow_file_protocol=True,
    )


@pytest.fixture(params=BACKENDS)
def backend(request) -> str:
    return request.param


@pytest.fixture
def make_area(tmp_path, backend, settings):
    """Factory for WorkingArea instances below tmp_path."""

    def _make(name: str, backend_name: str = None, area_settings: ClientSettings = None):
        return WorkingArea(
            tmp_path / name, backend_name or backend, area_settings or settings
        )

    return _make


@pytest.fixture
def area(make_area) -> WorkingArea:
    """Initialized, empty non-bare repository."""
    return make_area("work").init()


@pytest.fixture
def upstream(make_area, default_branch) -> WorkingArea:
    """
    Non-bare repository with two commits, tagged v0 and vLast, always
    prepared with plain git.
    """
    repo = make_area("upstream", backend_name="git").init()
    repo.commit_file("file1", "first", "first commit")
    repo.git.tag("v0")
    repo.commit_file("file1", "second", "second commit")
    repo.git.tag("vLast")
    return repo

import pytest

from gitclient.exceptions import OperationFailedError, UnsupportedOperationError

SUBMODULE_PATH = "modules/sub"


@pytest.fixture
def library(make_area):
    repo = make_area("library", backend_name="git").init()
    repo.c1 = repo.commit_file("file", "content1", "content1")
    return repo


@pytest.fixture
def superproject(area, library):
    area.client.add_submodule(library.url, SUBMODULE_PATH)
    area.client.commit("add submodule")
    return area


def _content(area) -> str:
    return (area.root / SUBMODULE_PATH / "file").read_text()


@pytest.mark.short
class TestSubmodules:
    def test_add(self, superproject, library):
        assert _content(superproject) == "content1"
        assert superproject.status() == []
        mode, sha = superproject.git.ls_tree("HEAD", SUBMODULE_PATH).split()[:3:2]
        assert mode == "160000"
        assert sha == library.c1

    def test_get_submodules(self, superproject, library):
        (record,) = superproject.client.get_submodules()
        assert record.name == SUBMODULE_PATH
        assert record.path == SUBMODULE_PATH
        assert record.url == library.url
        assert str(record.pinned) == library.c1
        assert record.branch is None

    def test_no_submodules(self, area):
        assert area.client.get_submodules() == []

    def test_remote_tracking_then_pinned(self, superproject, library):
        library.commit_file("file", "content2", "content2")

        superproject.client.submodule_update().remote_tracking(True).execute()
        assert _content(superproject) == "content2"

        superproject.client.submodule_update().remote_tracking(False).execute()
        assert _content(superproject) == "content1"

    def test_file_added_at_branch_tip(self, superproject, library):
        library.commit_file("added", "tip only", "add file at tip")
        added = superproject.root / SUBMODULE_PATH / "added"

        superproject.client.submodule_update().recursive(True).execute()
        assert not added.exists()

        superproject.client.submodule_update().recursive(True).remote_tracking(True).execute()
        assert added.read_text() == "tip only"
        assert _content(superproject) == "content1"

        superproject.client.submodule_update().recursive(True).execute()
        assert not added.exists()

    def test_tracked_branch(self, superproject, library, default_branch):
        library.git.checkout("-b", "develop")
        library.commit_file("file", "develop", "develop")
        library.git.checkout(default_branch)
        library.commit_file("file", "content2", "content2")

        superproject.client.submodule_update().remote_tracking(True).use_branch(
            SUBMODULE_PATH, "develop"
        ).execute()
        assert _content(superproject) == "develop"

    def test_use_branch_needs_names(self, superproject):
        with pytest.raises(ValueError):
            superproject.client.submodule_update().use_branch(SUBMODULE_PATH, "")

    def test_clone_init_update(self, make_area, superproject):
        clone = make_area("clone")
        clone.client.clone(superproject.url)
        clone.client.submodule_init(recursive=True)
        clone.client.submodule_update().recursive(True).execute()
        assert _content(clone) == "content1"


@pytest.mark.short
class TestFixSubmoduleUrls:
    def test_library_backend(self, make_area, superproject):
        clone = make_area("clone", backend_name="dulwich")
        clone.client.clone(superproject.url)
        with pytest.raises(UnsupportedOperationError):
            clone.client.fix_submodule_urls()

    def test_missing_remote(self, make_area, superproject):
        client = make_area(superproject.root.name, backend_name="git").client
        with pytest.raises(OperationFailedError, match="Could not determine remote origin"):
            client.fix_submodule_urls("origin")

    def test_origin_with_work_tree(self, make_area, superproject):
        clone = make_area("clone", backend_name="git")
        clone.client.clone(superproject.url)
        clone.client.fix_submodule_urls()
        assert clone.git.config("--get", f"submodule.{SUBMODULE_PATH}.url") == (
            f"{superproject.url}/{SUBMODULE_PATH}"
        )

    def test_relative_url(self, make_area, superproject):
        clone = make_area("clone", backend_name="git")
        clone.client.clone(superproject.url)
        clone.git.config("-f", ".gitmodules", f"submodule.{SUBMODULE_PATH}.url", "../library")
        clone.client.fix_submodule_urls()
        expected = str(superproject.root.parent / "library")
        assert clone.git.config("--get", f"submodule.{SUBMODULE_PATH}.url") == expected

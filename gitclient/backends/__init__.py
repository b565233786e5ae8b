from gitclient.backends.base import GitBackend
from gitclient.backends.library import DulwichBackend
from gitclient.backends.process import CliGitBackend

BACKENDS = {
    CliGitBackend.name: CliGitBackend,
    DulwichBackend.name: DulwichBackend,
}

__all__ = ["GitBackend", "CliGitBackend", "DulwichBackend", "BACKENDS"]

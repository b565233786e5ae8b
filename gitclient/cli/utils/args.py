from pathlib import Path
from typing import Optional

import click

from gitclient.backends import BACKENDS
from gitclient.client import GitClient, create_client


def backend_option(cmd):
    """Decorator adding --backend to a command"""
    return click.option(
        "--backend",
        type=click.Choice(sorted(BACKENDS)),
        default="git",
        show_default=True,
        help="git implementation to use.",
    )(cmd)


def open_client(path: Optional[str], backend: str) -> GitClient:
    """
    Client for the command line: a repository path, or the current
    directory for commands that only talk to remotes.
    """
    return create_client(Path(path) if path else Path.cwd(), backend=backend)

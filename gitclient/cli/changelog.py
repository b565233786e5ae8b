"""CLI command printing the raw changelog between two revisions"""

import sys

import click

from gitclient.cli.utils.args import backend_option, open_client
from gitclient.cli.utils.logging import logger
from gitclient.exceptions import GitClientError


@click.command("changelog")
@click.argument("repository", type=click.Path(exists=True, file_okay=False))
@click.argument("rev_from")
@click.argument("rev_to")
@click.option("--max-count", "-n", type=int, default=None, help="Limit the number of commits.")
@backend_option
def changelog(repository: str, rev_from: str, rev_to: str, max_count, backend: str):
    """Print commits reachable from REV_TO but not from REV_FROM.

    Example:

      gitclient changelog . v1.0 HEAD
    """
    try:
        client = open_client(repository, backend)
        text = client.changelog(rev_from, rev_to, max_count=max_count)
    except GitClientError as e:
        logger.error(f"Failed to read changelog {rev_from}..{rev_to}: {e}")
        sys.exit(1)

    click.echo(text, nl=False)

"""CLI commands for mirror cache management"""

import sys
from functools import partial
from typing import Optional, Tuple

import click

from gitclient.cli.utils.args import backend_option
from gitclient.cli.utils.logging import logger
from gitclient.client import create_client
from gitclient.exceptions import GitClientError
from gitclient.mirror import MirrorCache


@click.group(name="mirror")
def mirror():
    """Manage shared mirror clones."""
    pass


@mirror.command("populate")
@click.argument("urls", nargs=-1, required=True)
@click.option(
    "--reference",
    type=click.Path(exists=True, file_okay=False),
    default=None,
    help="Repository to borrow objects from while cloning.",
)
@click.option("--refresh", is_flag=True, help="Fetch mirrors that already exist.")
@backend_option
def populate(urls: Tuple[str, ...], reference: Optional[str], refresh: bool, backend: str):
    """Create (or refresh) the mirror of each URL.

    Example:

      gitclient mirror populate https://github.com/user/repo
    """
    cache = MirrorCache(client_factory=partial(create_client, backend=backend))
    logger.info(f"Mirror cache: {cache.cache_dir}")

    failed = []
    for url in urls:
        try:
            path = cache.local_mirror(url, reference=reference, refresh=refresh)
            logger.info(f"  {url} -> {path}")
        except GitClientError as e:
            logger.error(f"Failed to mirror {url}: {e}")
            failed.append(url)

    logger.info(f"Mirrored {len(urls) - len(failed)}/{len(urls)} repositories")
    if failed:
        sys.exit(1)


@mirror.command("list")
def list_mirrors():
    """List mirrors in the cache."""
    cache = MirrorCache()
    mirrors = cache.describe_mirrors()
    if not mirrors:
        logger.info(f"No mirrors in {cache.cache_dir}")
        return

    for info in mirrors:
        head = info["head"][:7] if info["head"] != "unknown" else info["head"]
        click.echo(f"{info['repo_path']}  {info['branch']}@{head}  {info['url']}")

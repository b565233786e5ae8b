"""CLI commands for inspecting remote references"""

import sys
from typing import Optional

import click

from gitclient.cli.utils.args import backend_option, open_client
from gitclient.cli.utils.logging import logger
from gitclient.exceptions import GitClientError


@click.command("ls-remote")
@click.argument("url")
@click.argument("pattern", required=False)
@click.option("--heads", is_flag=True, help="Limit to refs/heads.")
@click.option("--tags", is_flag=True, help="Limit to refs/tags.")
@backend_option
def ls_remote(url: str, pattern: Optional[str], heads: bool, tags: bool, backend: str):
    """List references of a remote repository.

    PATTERN may use * and ? wildcards; names without a refs/ prefix are
    looked up under refs/heads/ and refs/tags/.

    Example:

      gitclient ls-remote https://github.com/user/repo 'release-*' --tags
    """
    try:
        client = open_client(None, backend)
        references = client.get_remote_references(url, pattern, heads, tags)
    except GitClientError as e:
        logger.error(f"Failed to list references of {url}: {e}")
        sys.exit(1)

    for name, object_id in sorted(references.items()):
        click.echo(f"{object_id}\t{name}")


@click.command("head-rev")
@click.argument("url")
@click.argument("branch")
@backend_option
def head_rev(url: str, branch: str, backend: str):
    """Print the commit a branch specification resolves to.

    Example:

      gitclient head-rev https://github.com/user/repo '*/main'
    """
    try:
        client = open_client(None, backend)
        object_id = client.get_head_rev(url, branch)
    except GitClientError as e:
        logger.error(f"Failed to resolve {branch} in {url}: {e}")
        sys.exit(1)

    click.echo(str(object_id))

"""gitclient CLI"""

import click

from gitclient import __version__
from gitclient.cli.changelog import changelog
from gitclient.cli.mirror import mirror
from gitclient.cli.refs import head_rev, ls_remote

from .debug import add_debug_option


@click.group()
@click.version_option(__version__, prog_name="gitclient")
@click.pass_context
def cli(ctx):
    """
    git client command line: remote references, changelogs and mirrors.
    """
    ctx.ensure_object(dict)


cli.add_command(add_debug_option(ls_remote))
cli.add_command(add_debug_option(head_rev))
cli.add_command(add_debug_option(changelog))
cli.add_command(add_debug_option(mirror))

add_debug_option(cli)

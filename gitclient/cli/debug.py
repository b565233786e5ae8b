import click

from .utils.logging import configure_logging


def add_debug_option(cmd: click.Command) -> click.Command:
    """Add --debug/--no-debug to a command, or to a group and all its subcommands."""
    if not any(param.name == "debug" for param in cmd.params):
        cmd.params.insert(
            0,
            click.Option(
                ["--debug/--no-debug"],
                is_eager=True,
                expose_value=False,
                callback=_set_debug,
                help="Enable debug logging, dulwich records included.",
            ),
        )
    if isinstance(cmd, click.Group):
        for subcommand in cmd.commands.values():
            add_debug_option(subcommand)
    return cmd


def _set_debug(ctx: click.Context, param: click.Parameter, value: bool) -> bool:
    root_ctx = ctx.find_root()
    root_ctx.ensure_object(dict)

    # Any level may switch debug on; only the top level may switch it off
    if value or ctx is root_ctx:
        root_ctx.obj["DEBUG"] = value
    debug = root_ctx.obj.setdefault("DEBUG", False)

    configure_logging(debug)
    return debug

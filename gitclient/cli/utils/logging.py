import logging
import sys


logger = logging.getLogger("gitclient")

DEBUG_FORMAT = "%(levelname)s %(name)s: %(message)s"


class StderrHandler(logging.StreamHandler):
    """Writes to whatever sys.stderr is when a record is emitted."""

    def __init__(self):
        logging.Handler.__init__(self)

    @property
    def stream(self):
        return sys.stderr


def configure_logging(debug: bool):
    """
    Configures the logging system based on the debug flag.

    Records go to stderr so references and changelogs printed on stdout stay
    machine readable. Executed git commands are logged by "gitclient.commands"
    at INFO; debug mode adds logger names and the records of dulwich itself.
    """
    handler = StderrHandler()
    handler.setFormatter(logging.Formatter(DEBUG_FORMAT if debug else "%(message)s"))

    for name, level in (
        ("gitclient", logging.DEBUG if debug else logging.INFO),
        ("dulwich", logging.DEBUG if debug else logging.WARNING),
    ):
        target = logging.getLogger(name)
        target.setLevel(level)
        for previous in [h for h in target.handlers if isinstance(h, StderrHandler)]:
            target.removeHandler(previous)
        target.addHandler(handler)

"""
Arbor logging.

Library modules log through children of the "arbor" logger and never configure
handlers on import. A host program (or a test) calls setup() once to route
records through a rich handler on stderr.
"""
import logging

from rich.console import Console
from rich.logging import RichHandler

ROOT = "arbor"


class LogObjects:
    """Reusable objects for loggers."""

    handlers: list[logging.Handler] = []


def setup(debug=False, /, console=None):
    """
    Install a single RichHandler on the "arbor" logger.

    Calling setup() again replaces the previous handler, so tests can point
    logging at their own console.
    """
    logger = logging.getLogger(ROOT)
    for handler in LogObjects.handlers:
        logger.removeHandler(handler)
    LogObjects.handlers.clear()

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_time=False,
        show_path=debug,
        markup=False,
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter("%(name)s - %(message)s" if debug else "%(message)s"))
    LogObjects.handlers.append(handler)

    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if debug else logging.WARNING)
    logger.propagate = False
    return logger


def get_logger(name=""):
    """
    Return the "arbor" logger, or one of its children ("arbor.<name>").
    """
    return logging.getLogger(f"{ROOT}.{name}" if name else ROOT)


__all__ = (
    "setup",
    "get_logger",
)

"""wizgate logging setup for the command line."""

import logging
from typing import Union

from rich.console import Console
from rich.logging import RichHandler

from wizgate.logging.redaction import redact_url, sanitize_for_log

_HANDLER_NAME = "wizgate-rich"


def configure_logging(level: Union[str, int] = logging.WARNING, verbose: bool = False) -> logging.Logger:
    """Attach a RichHandler writing to stderr to the ``wizgate`` logger.

    Calling this again replaces the handler instead of stacking another one.
    ``verbose`` forces DEBUG.
    """
    logger = logging.getLogger("wizgate")
    if verbose:
        level = logging.DEBUG
    elif isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.WARNING

    for handler in list(logger.handlers):
        if handler.get_name() == _HANDLER_NAME:
            logger.removeHandler(handler)

    handler = RichHandler(
        console=Console(stderr=True),
        show_path=verbose,
        rich_tracebacks=verbose,
        markup=False,
    )
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))

    logger.addHandler(handler)
    logger.setLevel(level)
    return logger


__all__ = ["configure_logging", "redact_url", "sanitize_for_log"]

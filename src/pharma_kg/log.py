"""
Logging setup.

Library modules log through ``logging.getLogger(__name__)``; the CLI calls
:func:`setup_logging` once to route records through rich.
"""

import logging

from rich.console import Console
from rich.logging import RichHandler

from pharma_kg.config import Settings, settings

QUIET_LOGGERS = ("httpx", "httpcore")


def setup_logging(config: Settings | None = None, console: Console | None = None) -> None:
    """
    Install a RichHandler on the root logger.

    Args:
        config: Settings providing ``log_level`` (defaults to global settings)
        console: Console to render to (defaults to a stderr console)
    """
    config = config or settings
    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
        markup=False,
    )
    logging.basicConfig(
        level=config.log_level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[handler],
        force=True,
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

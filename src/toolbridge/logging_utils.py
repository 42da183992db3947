"""Logging setup for command-line use.

Library modules only create module loggers; handlers are installed here,
by the CLI, so stdout stays reserved for command output.
"""

from __future__ import annotations

import logging
import sys

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: int = logging.WARNING) -> None:
    """Send all logging to stderr at ``level``.

    Removes handlers installed earlier so repeated calls (e.g. from tests
    invoking the CLI several times) do not duplicate output.
    """
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root_logger.addHandler(stderr_handler)
    root_logger.setLevel(level)

    # httpx logs every request at INFO; only show it when debugging
    logging.getLogger("httpx").setLevel(logging.DEBUG if level <= logging.DEBUG else logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

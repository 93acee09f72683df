"""
Logging configuration shared by the services.

Defines one format and handler setup for every logger in a process.
"""

import logging
import sys


def setup_logging(level: int | str = logging.INFO) -> None:
    """
    Configure the root logger to write to stdout.

    Args:
        level: Logging level (INFO, DEBUG, ...), as an int or a level name.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    log_format = "%(asctime)s - [%(levelname)s] - %(name)s - (%(filename)s).%(funcName)s(%(lineno)d) - %(message)s"

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(logging.Formatter(log_format))

    logging.basicConfig(level=level, handlers=[stdout_handler], force=True)

    # noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("aio_pika").setLevel(logging.WARNING)
    logging.getLogger("aiormq").setLevel(logging.WARNING)
    logging.getLogger("passlib").setLevel(logging.ERROR)

"""
Logger factory shared by all ragcore modules.

Usage:
    from ragcore.logger import get_logger
    logger = get_logger(__name__)
    logger.info("Indexed %s", doc_id)
"""

import logging
import sys
from typing import Optional

_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Every module logger is a child of this one, so one handler covers all.
ROOT_LOGGER_NAME = "ragcore"


def configure_logging(level="INFO") -> logging.Logger:
    """
    Attach a console handler to the package root logger.

    Safe to call more than once: the handler is only added the first time,
    later calls just change the level.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(level)

    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(fmt=_FORMAT, datefmt=_DATEFMT))
        root.addHandler(handler)

    return root


def get_logger(name: str, level: Optional[int] = None) -> logging.Logger:
    """
    Return a named logger under the ``ragcore`` hierarchy.

    Args:
        name:  Typically ``__name__`` of the calling module.
        level: Explicit level override for this logger only.
    """
    if name != ROOT_LOGGER_NAME and not name.startswith(ROOT_LOGGER_NAME + "."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    logger = logging.getLogger(name)
    if level is not None:
        logger.setLevel(level)
    return logger

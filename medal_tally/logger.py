"""Named logger factory with a shared console format."""

import logging
import os
from typing import Dict

_LOGGERS: Dict[str, logging.Logger] = {}

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def get_logger(name: str) -> logging.Logger:
    """
    Create or retrieve a named logger.

    @param name: Logger namespace (e.g. medal_tally.store)
    @return: Logger with a single console handler attached
    """
    if name in _LOGGERS:
        return _LOGGERS[name]

    level = logging.getLevelName(os.getenv("LOG_LEVEL", "INFO").upper())
    if not isinstance(level, int):
        level = logging.INFO

    logger = logging.getLogger(name)
    logger.setLevel(level)

    console = logging.StreamHandler()
    console.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(console)

    _LOGGERS[name] = logger
    return logger

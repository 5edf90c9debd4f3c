import logging
import os
import sys

ROOT_LOGGER_NAME = "diffanchor"
LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
LOG_LEVEL_ENV = "DIFFANCHOR_LOG_LEVEL"


def setup_logging(level: int | str | None = None) -> logging.Logger:
    """Attach a stderr handler to the package logger.

    The level comes from `level`, then DIFFANCHOR_LOG_LEVEL, then INFO.
    """
    if level is None:
        level = os.getenv(LOG_LEVEL_ENV, "INFO").upper()

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False
    return logger

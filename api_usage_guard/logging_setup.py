"""
Logging configuration.

Modules log through ``logging.getLogger(__name__)``; entry points call
``configure_logging`` once to attach a handler to the package logger.
"""

import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_PACKAGE_LOGGER = "api_usage_guard"


def configure_logging(level: str = "INFO") -> logging.Logger:
    """Attach a stderr handler to the package logger and set its level.

    Calling it again only updates the level.
    """
    logger = logging.getLogger(_PACKAGE_LOGGER)
    logger.setLevel(level)
    if not any(getattr(handler, "_api_usage_guard", False) for handler in logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._api_usage_guard = True
        logger.addHandler(handler)
    return logger

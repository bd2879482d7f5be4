"""Diagnostic logging for otel-exec.

Everything goes to stderr so the wrapped command keeps stdout to itself.
"""

import logging
import sys

import pendulum

LOG_FORMAT = "%(asctime)s otel-exec %(levelname)s %(name)s: %(message)s"
ROOT_LOGGER = "otel_exec"


class UTCFormatter(logging.Formatter):
    """Formatter stamping records with ISO-8601 UTC times."""

    def formatTime(self, record, datefmt=None):
        stamp = pendulum.from_timestamp(record.created, tz="UTC")
        if datefmt:
            return stamp.format(datefmt)
        return stamp.to_iso8601_string()


def get_logger(name: str) -> logging.Logger:
    """Return a child of the package logger.

    Args:
        name: Logger name, normally ``__name__`` of the calling module.
    """
    if not name.startswith(ROOT_LOGGER):
        name = f"{ROOT_LOGGER}.{name}"
    return logging.getLogger(name)


def configure_logging(verbose: bool = False, stream=None) -> logging.Logger:
    """Attach a single stderr handler to the package logger.

    Soft failures are logged at WARNING and always shown; ``verbose`` adds
    the DEBUG bookkeeping of the relay, deadlines and exporter.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(UTCFormatter(fmt=LOG_FORMAT))
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    logger.propagate = False
    return logger

"""Logging setup for the schedule engine package."""

from __future__ import annotations

import logging
import sys
from typing import Iterable, Optional

from schedule_engine.utils.config import get_settings


PACKAGE_LOGGER = "schedule_engine"
LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
REDACTED = "***"
_QUIET_LIBRARY_LOGGERS = ("httpx", "httpcore")

_handler: Optional[logging.Handler] = None


class SecretRedactingFilter(logging.Filter):
    """Masks configured secrets in the rendered message of every record.

    The record is rewritten in place, so handlers further up the logger
    hierarchy only ever see the masked text.
    """

    def __init__(self, secrets: Iterable[Optional[str]]) -> None:
        super().__init__()
        self._secrets = tuple(secret for secret in secrets if secret)

    def filter(self, record: logging.LogRecord) -> bool:
        if not self._secrets:
            return True
        message = record.getMessage()
        redacted = message
        for secret in self._secrets:
            redacted = redacted.replace(secret, REDACTED)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def configure_logging(level: Optional[str] = None) -> logging.Handler:
    """Attach the pipe-delimited stdout handler to the package logger once."""

    global _handler
    if _handler is not None:
        return _handler

    settings = get_settings()
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel((level or settings.log_level).upper())

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(SecretRedactingFilter([settings.advisor_api_key]))
    package_logger.addHandler(handler)

    # Request lines from the advisor client stay out of the application stream.
    for noisy_logger in _QUIET_LIBRARY_LOGGERS:
        logging.getLogger(noisy_logger).setLevel(logging.WARNING)
    _handler = handler
    return handler


def get_logger(name: str) -> logging.Logger:
    """Return a logger for ``name`` with the package handler in place."""
    configure_logging()
    return logging.getLogger(name)

from __future__ import annotations

import logging

from schedule_engine.utils.logger import (
    PACKAGE_LOGGER,
    REDACTED,
    SecretRedactingFilter,
    configure_logging,
    get_logger,
)


SECRET = "s" * 32


def _record(msg: str, *args) -> logging.LogRecord:
    return logging.LogRecord("schedule_engine.test", logging.WARNING, __file__, 1, msg, args, None)


def test_secret_is_masked_in_formatted_message() -> None:
    record = _record("request failed | url=%s", f"https://example.test/?key={SECRET}")

    assert SecretRedactingFilter([SECRET]).filter(record)
    assert record.getMessage() == f"request failed | url=https://example.test/?key={REDACTED}"


def test_records_without_secret_are_left_alone() -> None:
    record = _record("Schedule optimized | suggestions=%s", 4)

    assert SecretRedactingFilter([SECRET, None]).filter(record)
    assert record.args == (4,)
    assert record.getMessage() == "Schedule optimized | suggestions=4"


def test_handler_is_attached_to_package_logger_once() -> None:
    first = configure_logging()
    second = configure_logging()

    assert first is second
    package_handlers = logging.getLogger(PACKAGE_LOGGER).handlers
    assert package_handlers.count(first) == 1
    assert get_logger("schedule_engine.services.advisor_service").name.startswith(PACKAGE_LOGGER)
    assert logging.getLogger("httpx").level == logging.WARNING

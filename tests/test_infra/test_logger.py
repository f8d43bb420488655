from __future__ import annotations

import logging

import pytest

from orderflow.util import logger as logger_module


def test_plain_file_formatter_strips_markup_but_keeps_status_brackets() -> None:
    formatter = logger_module._PlainFileFormatter(fmt="%(message)s")
    record = logging.LogRecord(
        name="orderflow",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="[order]%s -> %s[/order] note=[PENDING]",
        args=("PENDING", "ASSIGNED"),
        exc_info=None,
    )

    assert formatter.format(record) == "PENDING -> ASSIGNED note=[PENDING]"


def test_log_transition_emits_info_record(caplog: pytest.LogCaptureFixture) -> None:
    logger_module.logger.addHandler(caplog.handler)
    try:
        with caplog.at_level(logging.INFO, logger="orderflow"):
            logger_module.log_transition("42", "PENDING", "ASSIGNED", "accept v1 by specialist spec-a")
    finally:
        logger_module.logger.removeHandler(caplog.handler)

    messages = [record.getMessage() for record in caplog.records]
    assert any("PENDING -> ASSIGNED" in message and "order=42" in message for message in messages)

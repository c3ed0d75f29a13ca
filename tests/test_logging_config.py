from __future__ import annotations

import logging

from chartup.logging_config import LOGGER_NAME, setup_logging


def test_setup_logging_is_idempotent() -> None:
    """
    重复调用只调整级别，不会叠加 handler。
    """
    logger = setup_logging(logging.DEBUG)
    count = len(logger.handlers)
    again = setup_logging("warning")
    assert again is logger
    assert logger.name == LOGGER_NAME
    assert len(logger.handlers) == count
    assert logger.level == logging.WARNING
    assert all(h.level == logging.WARNING for h in logger.handlers)

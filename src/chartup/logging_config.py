"""Logging configuration for chartup."""

from __future__ import annotations

import logging
import sys

LOGGER_NAME = "chartup"


def setup_logging(level: int | str = logging.WARNING) -> logging.Logger:
    """
    为 chartup 日志器挂载一个输出到 stderr 的 handler（重复调用只调整级别）。
    """
    logger = logging.getLogger(LOGGER_NAME)
    if isinstance(level, str):
        level = getattr(logging, level.upper())
    logger.setLevel(level)

    if logger.handlers:
        for handler in logger.handlers:
            handler.setLevel(level)
        return logger

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(
        logging.Formatter("[%(asctime)s] %(levelname)s - %(name)s - %(message)s", datefmt="%Y-%m-%d %H:%M:%S")
    )
    logger.addHandler(handler)
    return logger

from __future__ import annotations

import logging
import sys
from typing import Optional

LOGGER_NAMES = ("kpi_core", "kpi_api")

_configured = False


class LabeledFormatter(logging.Formatter):
    """`LABEL logger: message`, with WARN instead of WARNING."""

    LEVEL_LABELS = {
        logging.DEBUG: "DEBUG",
        logging.INFO: "INFO",
        logging.WARNING: "WARN",
        logging.ERROR: "ERROR",
        logging.CRITICAL: "CRITICAL",
    }

    def format(self, record: logging.LogRecord) -> str:
        label = self.LEVEL_LABELS.get(record.levelno, record.levelname)
        message = f"{label} {record.name}: {record.getMessage()}"
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        return message


def setup_logging(level: str = "INFO", stream: Optional[object] = None) -> None:
    """Attach one labelled stream handler to the package loggers (idempotent)."""
    global _configured
    numeric = logging.getLevelName(level.upper()) if isinstance(level, str) else level
    if not isinstance(numeric, int):
        numeric = logging.INFO

    for name in LOGGER_NAMES:
        logger = logging.getLogger(name)
        logger.setLevel(numeric)
        if _configured:
            continue
        handler = logging.StreamHandler(stream or sys.stderr)
        handler.setFormatter(LabeledFormatter())
        logger.addHandler(handler)
        logger.propagate = False
    _configured = True


def reset_logging() -> None:
    global _configured
    for name in LOGGER_NAMES:
        logger = logging.getLogger(name)
        for handler in logger.handlers[:]:
            logger.removeHandler(handler)
        logger.propagate = True
    _configured = False

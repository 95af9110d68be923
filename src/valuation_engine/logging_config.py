"""
Logging configuration for the valuation engine.

The library only attaches handlers when an application asks it to; importing
any engine module never touches the root logger.
"""
from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict

PACKAGE_LOGGER = "valuation_engine"


class JSONFormatter(logging.Formatter):
    """Single-line JSON records for log shipping."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "function": record.funcName,
            "line": record.lineno,
        }
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        if hasattr(record, "company_id"):
            log_data["company_id"] = record.company_id
        return json.dumps(log_data)


class DetailedFormatter(logging.Formatter):
    def __init__(self):
        super().__init__(
            fmt="%(asctime)s | %(levelname)-8s | %(name)-36s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )


def configure_logging(level: int | str = logging.INFO, json_format: bool = False) -> logging.Logger:
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(level)
    for handler in list(logger.handlers):
        if getattr(handler, "_valuation_engine", False):
            logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if json_format else DetailedFormatter())
    handler._valuation_engine = True  # type: ignore[attr-defined]
    logger.addHandler(handler)
    return logger


logging.getLogger(PACKAGE_LOGGER).addHandler(logging.NullHandler())

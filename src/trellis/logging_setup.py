"""Logging configuration: JSON lines on stderr."""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone

from trellis.core.config import VALID_LOG_LEVELS

LOG_LEVEL_ENV = "TRELLIS_LOG_LEVEL"


class JsonLineFormatter(logging.Formatter):
    """One JSON object per record.

    Structured fields come from ``extra={"context": {...}}``.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: dict = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).strftime(
                "%Y-%m-%dT%H:%M:%S.%fZ"
            ),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        context = getattr(record, "context", None)
        if context:
            payload["context"] = context
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str, sort_keys=True)


def setup_logging(level: int | str | None = None) -> None:
    """Route ``trellis.*`` loggers to stderr as JSON lines.

    Without an explicit *level*, ``TRELLIS_LOG_LEVEL`` is used, then
    WARNING.  Safe to call more than once; earlier handlers are replaced.
    """
    if level is None:
        env_level = os.environ.get(LOG_LEVEL_ENV, "").upper()
        level = env_level if env_level in VALID_LOG_LEVELS else logging.WARNING
    elif isinstance(level, str):
        level = level.upper()

    logger = logging.getLogger("trellis")
    logger.setLevel(level)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonLineFormatter())
    logger.addHandler(handler)
    logger.propagate = False

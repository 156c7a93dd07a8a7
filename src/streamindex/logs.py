"""
StreamIndex Logs — Structured Log Output
========================================

One JSON object per line, with any `extra=` context merged in, so log
lines from the Lambda runtime and the CLI can be queried by field.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Optional

HANDLER_NAME = "streamindex.json"

# Attributes every LogRecord carries; anything else came from extra=
_RESERVED = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


class JsonFormatter(logging.Formatter):
    """Render a record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key not in _RESERVED and not key.startswith("_"):
                payload[key] = value
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging(level: Optional[str] = None) -> None:
    """
    Install the JSON formatter on the streamindex logger.

    Args:
        level: Log level name (default: STREAMINDEX_LOG_LEVEL or INFO)
    """
    level = (level or os.environ.get("STREAMINDEX_LOG_LEVEL") or "INFO").upper()

    logger = logging.getLogger("streamindex")
    logger.setLevel(level)
    if not any(h.get_name() == HANDLER_NAME for h in logger.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.set_name(HANDLER_NAME)
        handler.setFormatter(JsonFormatter())
        logger.addHandler(handler)
    logger.propagate = False

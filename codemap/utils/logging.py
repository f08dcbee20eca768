"""Logging setup for the API, the CLI and the storage layer.

Storage log calls attach ``backend``, ``operation`` and ``key`` through
``extra=``; the JSON formatter lifts them to top-level fields so log
pipelines can filter by backend.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional, TextIO

CONTEXT_FIELDS = ("backend", "operation", "key")

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                log_data[name] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data)


def setup_logging(
    level: str = "INFO",
    json_output: bool = False,
    stream: Optional[TextIO] = None,
) -> None:
    """Replace the root handlers with a single stream handler.

    The CLI passes ``stream=sys.stderr`` so command output on stdout stays
    machine-readable.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setLevel(numeric_level)
    handler.setFormatter(JSONFormatter() if json_output else logging.Formatter(DEFAULT_FORMAT))
    root_logger.addHandler(handler)

    # redis-py logs every reconnect at INFO
    logging.getLogger("redis").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)

"""
Structured JSON logging.

Every log entry is written as one JSON object per line with a timestamp,
level, message, logger name and source location, plus the current request
ID when one is set. Context passed through ``extra=`` is merged into the
entry, as is an ``extra_data`` dict.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from middleware.request_id import current_request_id

# Attributes every LogRecord carries; anything else came from ``extra=``
_RESERVED_ATTRIBUTES = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime", "extra_data"}


class JSONFormatter(logging.Formatter):
    """
    Log formatter that outputs one JSON object per record.

    Each log entry contains:
    - timestamp: ISO 8601 formatted UTC timestamp
    - level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    - message: The log message
    - logger: Name of the logger that produced the entry
    - module, function, line: Where the entry was logged
    - request_id: Set while a request is being handled
    """

    def format(self, record: logging.LogRecord) -> str:
        """
        Format a log record as a JSON string.

        Args:
            record: The log record to format

        Returns:
            JSON-formatted string containing the log entry
        """
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }

        request_id = current_request_id()
        if request_id:
            log_data["request_id"] = request_id

        if record.module:
            log_data["module"] = record.module
        if record.funcName and record.funcName != "<module>":
            log_data["function"] = record.funcName
        if record.lineno:
            log_data["line"] = record.lineno

        for key, value in vars(record).items():
            if key not in _RESERVED_ATTRIBUTES and not key.startswith("_"):
                log_data[key] = value

        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            log_data.update(extra_data)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if record.stack_info:
            log_data["stack_trace"] = record.stack_info

        return json.dumps(log_data, default=str)


def configure_logging(settings: Optional[Any] = None) -> logging.Logger:
    """
    Install the JSON formatter on the root logger.

    Existing root handlers are replaced so entries are not duplicated.

    Args:
        settings: Optional settings object providing ``log_level``.

    Returns:
        The root logger.
    """
    log_level_str = getattr(settings, "log_level", None) or "INFO"
    log_level = getattr(logging, log_level_str.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setLevel(log_level)
    stdout_handler.setFormatter(JSONFormatter())
    root_logger.addHandler(stdout_handler)

    logging.getLogger(__name__).info(
        "Logging configured", extra={"extra_data": {"log_level": log_level_str}}
    )
    return root_logger

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone

CONTEXT_PREFIX = "ctx_"

_QUIET_LOGGERS = ("sqlalchemy.engine", "alembic", "uvicorn.access")


class JSONFormatter(logging.Formatter):
    """One JSON object per line. ``ctx_*`` extras are grouped under ``context``."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "event": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = {
                "type": type(record.exc_info[1]).__name__,
                "message": str(record.exc_info[1]),
            }
        context = {
            key[len(CONTEXT_PREFIX):]: value
            for key, value in record.__dict__.items()
            if key.startswith(CONTEXT_PREFIX)
        }
        if context:
            entry["context"] = context
        return json.dumps(entry, default=str)


def _has_json_handler(logger: logging.Logger) -> bool:
    return any(isinstance(h.formatter, JSONFormatter) for h in logger.handlers)


def setup_logging(level: str = "INFO", filters: list[logging.Filter] | None = None) -> None:
    """Attach a single stdout JSON handler to the root logger."""
    root = logging.getLogger()
    if _has_json_handler(root):
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter())
    for log_filter in filters or []:
        handler.addFilter(log_filter)
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)

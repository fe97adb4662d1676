"""
Logging setup: one stdout handler on the root logger, JSON or plain text.

Structured context travels in `extra={"extra_fields": {...}}` and is merged
into the JSON payload. Two named channels carry the audit trail:

- athletehub.audit         one line per persisted audit entry
- athletehub.audit.errors  audit write failures and dropped entries
"""
import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict

from core.config import settings

AUDIT_CHANNEL = "athletehub.audit"
AUDIT_ERROR_CHANNEL = "athletehub.audit.errors"

_QUIET_LOGGERS = ("sqlalchemy.engine", "aiosqlite", "uvicorn.access")


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "line": record.lineno,
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        payload.update(getattr(record, "extra_fields", None) or {})
        return json.dumps(payload, default=str)


def _formatter() -> logging.Formatter:
    if settings.LOG_FORMAT == "json":
        return JSONFormatter()
    return logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s")


def setup_logging() -> logging.Logger:
    """(Re)configure the root logger from settings. Safe to call repeatedly."""
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(_formatter())

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)

    # Audit lines are emitted whatever the global level is.
    logging.getLogger(AUDIT_CHANNEL).setLevel(logging.INFO)
    logging.getLogger(AUDIT_ERROR_CHANNEL).setLevel(logging.WARNING)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return root


setup_logging()

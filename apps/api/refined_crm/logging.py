from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

from refined_crm.context import log_context


_BASE_RECORD_KEYS = frozenset(logging.makeLogRecord({}).__dict__)
_CONTEXT_KEYS = ("correlation_id", "actor_id", "actor_role")
_KNOWN_FIELDS = frozenset(
    {
        "method",
        "path",
        "status_code",
        "duration_ms",
        "operation",
        "role",
        "reason",
        "entity_type",
        "entity_id",
        "recipient_count",
        "matrix_version",
        "job_type",
        "count",
        "status",
        "error",
    }
)
_MAX_ERROR_LENGTH = 500


def _attach_context(record: logging.LogRecord) -> None:
    for key, value in log_context().items():
        if not getattr(record, key, None):
            setattr(record, key, value)


class RequestContextFilter(logging.Filter):
    """Stamps correlation id and acting user onto records that lack them."""

    def filter(self, record: logging.LogRecord) -> bool:
        _attach_context(record)
        return True


_DEFAULT_RECORD_FACTORY = logging.getLogRecordFactory()


def _record_factory(*args: Any, **kwargs: Any) -> logging.LogRecord:
    record = _DEFAULT_RECORD_FACTORY(*args, **kwargs)
    _attach_context(record)
    return record


class JsonLogFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        payload.update({key: getattr(record, key, None) for key in _CONTEXT_KEYS})

        fields = {key: value for key, value in vars(record).items() if key in _KNOWN_FIELDS and key not in _BASE_RECORD_KEYS}
        if isinstance(fields.get("error"), str):
            fields["error"] = fields["error"][:_MAX_ERROR_LENGTH]
        if record.exc_info:
            fields["exception"] = self.formatException(record.exc_info)

        payload["fields"] = fields
        return json.dumps(payload, default=str)


def configure_logging(level: str | None = None) -> None:
    root_logger = logging.getLogger()
    if getattr(root_logger, "_refined_crm_configured", False):
        return

    resolved = getattr(logging, (level or os.getenv("LOG_LEVEL", "INFO")).upper(), logging.INFO)

    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setLevel(resolved)
    handler.setFormatter(JsonLogFormatter())
    handler.addFilter(RequestContextFilter())

    root_logger.handlers.clear()
    root_logger.filters.clear()
    root_logger.setLevel(resolved)
    logging.setLogRecordFactory(_record_factory)
    root_logger.addHandler(handler)
    root_logger._refined_crm_configured = True  # type: ignore[attr-defined]

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

from mockcrm.context import get_correlation_id


STRUCTURED_FIELDS = frozenset(
    {
        "method",
        "path",
        "status_code",
        "duration_ms",
        "account_id",
        "user_id",
        "auth_strategy",
        "customer_policy",
        "reason",
        "resource",
        "resource_id",
        "operation",
        "decision",
        "error",
    }
)
_ERROR_PREVIEW_CHARS = 500

_base_record_factory = logging.getLogRecordFactory()


def _correlated_record(*args: Any, **kwargs: Any) -> logging.LogRecord:
    record = _base_record_factory(*args, **kwargs)
    if getattr(record, "correlation_id", None) is None:
        record.correlation_id = get_correlation_id()
    return record


class JsonLogFormatter(logging.Formatter):
    """One JSON object per line.

    Only names in ``STRUCTURED_FIELDS`` are copied out of ``extra``, so an
    accidental ``extra={"password": ...}`` never reaches the log sink.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", None),
            "fields": self._structured_fields(record),
        }
        return json.dumps(payload, default=str)

    def _structured_fields(self, record: logging.LogRecord) -> dict[str, Any]:
        fields = {key: value for key, value in vars(record).items() if key in STRUCTURED_FIELDS}
        error = fields.get("error")
        if isinstance(error, str) and len(error) > _ERROR_PREVIEW_CHARS:
            fields["error"] = error[:_ERROR_PREVIEW_CHARS]
        if record.exc_info:
            fields["exception"] = self.formatException(record.exc_info)
        return fields


def configure_logging(level: str | None = None) -> None:
    """Route every logger through a single JSON stdout handler. Later calls are no-ops."""

    root_logger = logging.getLogger()
    if getattr(root_logger, "_mockcrm_configured", False):
        return

    resolved = logging.getLevelName((level or os.getenv("LOG_LEVEL", "INFO")).upper())
    if not isinstance(resolved, int):
        resolved = logging.INFO

    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(JsonLogFormatter())

    root_logger.handlers[:] = [handler]
    root_logger.setLevel(resolved)
    logging.setLogRecordFactory(_correlated_record)
    root_logger._mockcrm_configured = True  # type: ignore[attr-defined]

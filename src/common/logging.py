"""JSON logging for the generate API.

Every line carries ``service`` plus whatever structured fields the caller
attached. Telemetry events are nested under a ``telemetry`` key so their
camelCase fields never collide with ``LogRecord`` attributes.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

SERVICE_NAME = "updateforge"

# Attributes every LogRecord has; anything else on a record came from `extra`.
_RECORD_ATTRIBUTES = frozenset(logging.LogRecord("", logging.INFO, "", 0, "", (), None).__dict__) | {
    "message",
    "asctime",
}


def record_fields(record: logging.LogRecord) -> Dict[str, Any]:
    """Return the structured fields attached to a record via ``extra``."""
    return {key: value for key, value in record.__dict__.items() if key not in _RECORD_ATTRIBUTES}


class JsonFormatter(logging.Formatter):
    """Render log records as single-line JSON."""

    def format(self, record: logging.LogRecord) -> str:
        line: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "service": SERVICE_NAME,
            "logger": record.name,
            "message": record.getMessage(),
        }
        line.update(record_fields(record))

        if record.exc_info:
            line["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(line, default=str, ensure_ascii=True)


def _ensure_configured(level: int = logging.INFO) -> None:
    """Install the JSON handler on the root logger unless one is already set."""
    root = logging.getLogger()
    if root.handlers:
        return
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())
    root.setLevel(level)
    root.addHandler(handler)


def get_logger(name: str, level: int = logging.INFO) -> logging.Logger:
    _ensure_configured(level)
    return logging.getLogger(name)


def log_decision(
    logger: logging.Logger,
    *,
    request_id: Optional[str],
    action: str,
    outcome: str,
    **context: Any,
) -> None:
    """Log a guardrail or pipeline decision (admitted, rejected, fallback)."""
    logger.info(
        action,
        extra={"event": "decision", "request_id": request_id, "action": action, "outcome": outcome, **context},
    )


def log_telemetry(logger: logging.Logger, payload: Mapping[str, Any]) -> None:
    """Log one telemetry event; the payload is kept intact under ``telemetry``."""
    event = payload.get("event", "telemetry")
    logger.info(event, extra={"event": event, "telemetry": dict(payload)})


def log_error(
    logger: logging.Logger,
    message: str,
    *,
    request_id: Optional[str] = None,
    error: Optional[BaseException] = None,
    **context: Any,
) -> None:
    """Log an error with request correlation and the exception type, if any."""
    extra: Dict[str, Any] = {"request_id": request_id, **context}
    if error is not None:
        extra["error_type"] = type(error).__name__
    logger.error(message, extra=extra, exc_info=error)

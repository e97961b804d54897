"""Logging and telemetry configuration."""
import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from ..config import Settings

logger = logging.getLogger("gallery_sync.telemetry")

_RESERVED_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None)).keys()) | {"message", "asctime"}


def setup_logging(settings: Settings) -> None:
    """Configure root logging once, as JSON lines or plain text depending on settings."""
    handler = logging.StreamHandler(sys.stderr)
    if settings.log_format.lower() == "json":
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))

    root = logging.getLogger()
    for existing in list(root.handlers):
        if getattr(existing, "_gallery_sync", False):
            root.removeHandler(existing)
    handler._gallery_sync = True  # type: ignore[attr-defined]
    root.addHandler(handler)
    root.setLevel(settings.log_level.upper())


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON; dict messages are merged into the payload."""
        payload: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
        }
        if isinstance(record.msg, dict):
            payload.update(record.msg)
        else:
            payload["message"] = record.getMessage()

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                payload.setdefault(key, value)

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def log_timing(operation: str, duration_ms: float, metadata: Optional[Dict[str, Any]] = None) -> None:
    """Log operation timing metrics."""
    event: Dict[str, Any] = {"event": "timing", "operation": operation, "duration_ms": round(duration_ms, 3)}
    if metadata:
        event.update(metadata)
    logger.info(event)


def log_sync_event(event_type: str, details: Dict[str, Any]) -> None:
    """Log sync-related events."""
    logger.info({"event": f"sync.{event_type}", **details})

from __future__ import annotations

import json
import logging
import os
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional

from telemetry.pii import sanitize_log_payload, scrub_text

_CONFIGURED = False
_DEFAULT_LEVEL = "INFO"

# Attributes every LogRecord carries; anything else came in through `extra=`.
_RECORD_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime", "taskName"}


def _safe_value(value: Any) -> Any:
    try:
        json.dumps(value)
        return value
    except (TypeError, ValueError):
        return str(value)


class JsonFormatter(logging.Formatter):
    """One JSON object per line, with PII scrubbed from message and extras."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "level": record.levelname,
            "logger": record.name,
            "message": scrub_text(record.getMessage()),
        }
        for key, value in record.__dict__.items():
            if key in _RECORD_ATTRS or key == "timestamp" or key.startswith("_"):
                continue
            payload[key] = _safe_value(value)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        if record.stack_info:
            payload["stack"] = self.formatStack(record.stack_info)
        line = {"timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat()}
        line.update(sanitize_log_payload(payload))
        return json.dumps(line, ensure_ascii=True)


def configure_logging(level: Optional[str] = None, *, force: bool = False) -> None:
    """Install the JSON handler on the root logger (idempotent unless forced)."""
    global _CONFIGURED
    if _CONFIGURED and not force:
        return
    level_name = (level or os.getenv("LOG_LEVEL", _DEFAULT_LEVEL)).upper()
    resolved = logging.getLevelName(level_name)
    if not isinstance(resolved, int):
        resolved = logging.INFO
    root = logging.getLogger()
    if force:
        for handler in list(root.handlers):
            if isinstance(handler.formatter, JsonFormatter):
                root.removeHandler(handler)
    if force or not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(JsonFormatter())
        root.addHandler(handler)
    root.setLevel(resolved)
    # uvicorn installs its own access log format; route it through ours.
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(name).handlers = []
        logging.getLogger(name).propagate = True
    _CONFIGURED = True


def get_logger(name: str) -> logging.Logger:
    configure_logging()
    return logging.getLogger(name)


@contextmanager
def timed_operation(logger: logging.Logger, event: str, **fields: Any) -> Iterator[Dict[str, Any]]:
    """Log ``event`` with ``duration_ms`` once the block exits; callers may add fields to the yielded dict."""
    extra: Dict[str, Any] = dict(fields)
    started = time.perf_counter()
    try:
        yield extra
    except Exception:
        extra["outcome"] = "error"
        raise
    finally:
        extra.setdefault("outcome", "ok")
        extra["duration_ms"] = round((time.perf_counter() - started) * 1000, 3)
        logger.info(event, extra=extra)

import json
import logging
import os
from datetime import datetime, timezone
from typing import Any

_SENSITIVE_KEYS = {"ops_key", "api_key", "authorization", "cookie"}


class JsonLineFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        if isinstance(record.msg, dict):
            payload = dict(record.msg)
        else:
            payload = {"message": record.getMessage()}

        payload.setdefault("ts", datetime.now(timezone.utc).isoformat())
        payload.setdefault("level", record.levelname)
        payload.setdefault("logger", record.name)
        if record.exc_info:
            payload.setdefault("exc", self.formatException(record.exc_info))
        return json.dumps(payload, ensure_ascii=False, separators=(",", ":"), default=str)


def setup_logging() -> None:
    level_name = os.getenv("SITELOCK_LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    root = logging.getLogger()
    root.setLevel(level)

    for handler in root.handlers:
        if getattr(handler, "_sitelock_json", False):
            handler.setLevel(level)
            return

    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(JsonLineFormatter())
    handler._sitelock_json = True  # type: ignore[attr-defined]
    root.handlers = [handler]


def log_event(logger: logging.Logger, event: dict[str, Any], level: int = logging.INFO) -> None:
    safe_event = {key: value for key, value in event.items() if key.lower() not in _SENSITIVE_KEYS}
    safe_event.setdefault("ts", datetime.now(timezone.utc).isoformat())
    safe_event.setdefault("level", logging.getLevelName(level))
    logger.log(level, safe_event)

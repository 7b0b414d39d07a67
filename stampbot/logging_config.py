"""JSON line logging with customer numbers masked."""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Optional

# Context keys that hold WhatsApp numbers.
PHONE_KEYS = ("customer_id", "to", "wa_from", "sender")
# Context keys copied to the top level so log queries can filter on them.
TOP_LEVEL_KEYS = ("message_id", "customer_id", "flow")

QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


def mask_phone(value: Optional[str]) -> Optional[str]:
    """Keep the last four digits: 27821234567 -> *******4567."""
    if not value or len(value) <= 4:
        return value
    return "*" * (len(value) - 4) + value[-4:]


def _scrub(context: dict) -> dict:
    return {key: mask_phone(str(value)) if key in PHONE_KEYS and value else value for key, value in context.items()}


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        context = getattr(record, "context", None)
        if context:
            context = _scrub(context)
            for key in TOP_LEVEL_KEYS:
                if context.get(key) is not None:
                    entry[key] = context[key]
            entry["context"] = context

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    root.setLevel(level.upper())
    for handler in list(root.handlers):
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter())
    root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"stampbot.{name}")


class LoggerAdapter(logging.LoggerAdapter):
    """Binds per-event context; a call's own `context=` is merged on top."""

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        extra_context = kwargs.pop("context", None) or {}
        merged = {**(self.extra or {}), **extra_context}
        if merged:
            kwargs["extra"] = {**kwargs.get("extra", {}), "context": merged}
        return msg, kwargs

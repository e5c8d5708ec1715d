"""backtester.core.logging

Logging setup for the CLI and API entry points.

Library code only ever calls ``logging.getLogger(__name__)`` and logs
event-style messages with structured ``extra`` fields. Handlers are installed
here, once, by whoever owns the process.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from backtester.core.config import LoggingConfig

ROOT_LOGGER = "backtester"

# Attributes present on every LogRecord; anything else came in via ``extra``.
_RESERVED = frozenset(logging.LogRecord("", 0, "", 0, "", (), None).__dict__) | {"message", "asctime"}


def _extra_fields(record: logging.LogRecord) -> dict[str, Any]:
    return {k: v for k, v in record.__dict__.items() if k not in _RESERVED and not k.startswith("_")}


class JsonFormatter(logging.Formatter):
    """One JSON object per line, ``event`` holds the message."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "event": record.getMessage(),
            **_extra_fields(record),
        }
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str, separators=(",", ":"))


class TextFormatter(logging.Formatter):
    def __init__(self) -> None:
        super().__init__("%(asctime)s [%(levelname)s] %(name)s - %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        extra = _extra_fields(record)
        if not extra:
            return base
        fields = " ".join(f"{k}={v}" for k, v in sorted(extra.items()))
        return f"{base} {fields}"


def configure_logging(cfg: LoggingConfig | None = None) -> logging.Logger:
    cfg = cfg or LoggingConfig()

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(getattr(logging, cfg.level.upper(), logging.INFO))
    logger.propagate = False

    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter() if cfg.json_output else TextFormatter())
    logger.addHandler(handler)
    return logger

# Copyright (c) 2026 SchemaGate Contributors. All Rights Reserved.

"""
Structured Logging — JSON lines carrying the tenant schema and operation.

Bearer tokens, passwords and refresh tokens are masked in every formatted
message and traceback.
"""

from __future__ import annotations

import json
import logging
import re
import sys
from typing import Any, MutableMapping, Optional, TextIO, Tuple

CONTEXT_KEYS = ("trace_id", "schema", "operation")

_SECRETS = (
    re.compile(r"(Bearer\s+)[^\s\"',]+", re.IGNORECASE),
    re.compile(r"((?:password|access_token|refresh_token)[\"']?\s*[:=]\s*[\"']?)[^\s\"',}]+", re.IGNORECASE),
)


def redact(text: str) -> str:
    for pattern in _SECRETS:
        text = pattern.sub(r"\1***", text)
    return text


class StructuredFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": redact(record.getMessage()),
        }
        for key in CONTEXT_KEYS:
            val = getattr(record, key, None)
            if val:
                entry[key] = val

        if record.exc_info and record.exc_info[0]:
            entry["exception"] = redact(self.formatException(record.exc_info))

        return json.dumps(entry, ensure_ascii=False, default=str)


class SchemaLogger(logging.LoggerAdapter):
    """Adds the bound tenant schema to every record; per-call extra wins."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        kwargs["extra"] = {**self.extra, **(kwargs.get("extra") or {})}
        return msg, kwargs


def schema_logger(name: str, schema: str) -> SchemaLogger:
    return SchemaLogger(logging.getLogger(name), {"schema": schema})


def setup_logging(level: str = "INFO", stream: Optional[TextIO] = None) -> None:
    """Install the JSON handler on the root logger."""
    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(StructuredFormatter())

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers.clear()
    root.addHandler(handler)

    # httpx logs each request URL at INFO, filters included
    logging.getLogger("httpx").setLevel(logging.WARNING)

"""Logging setup for the portal client.

Environment variables:
    LOG_FORMAT  – "json" for one JSON object per line, "text" otherwise (default: "text")
    LOG_LEVEL   – root level name (default: "INFO")

Gateway and identity code pass ``operation`` and ``user_id`` through
``extra=``; both formats render them when present.
"""
from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from . import settings as _settings

_EXTRA_FIELDS = ("user_id", "operation")
_QUIET_LOGGERS = ("urllib3", "requests", "httpx", "httpcore")


def _extras(record: logging.LogRecord) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for name in _EXTRA_FIELDS:
        value = getattr(record, name, None)
        if value:
            out[name] = value
    return out


class _JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(_extras(record))
        if record.exc_info and record.exc_info[1] is not None:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


class _TextFormatter(logging.Formatter):
    def __init__(self) -> None:
        super().__init__("%(asctime)s %(levelname)-7s [%(name)s] %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        extras = _extras(record)
        if not extras:
            return line
        tail = " ".join(f"{k}={v}" for k, v in extras.items())
        head, sep, rest = line.partition("\n")
        return f"{head} {tail}{sep}{rest}"


def configure_logging(fmt: Optional[str] = None, level: Optional[str] = None) -> None:
    fmt_name = (fmt or _settings.log_format()).strip().lower()
    level_no = getattr(logging, (level or _settings.log_level()).strip().upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(level_no)
    for h in root.handlers[:]:
        root.removeHandler(h)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_JsonFormatter() if fmt_name == "json" else _TextFormatter())
    root.addHandler(handler)

    # Connection-pool chatter drowns gateway warnings at DEBUG.
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level_no, logging.WARNING))

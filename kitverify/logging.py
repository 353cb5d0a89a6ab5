"""
Structured Logging — Verification Context on Every Line

Loggers live under the ``kitverify`` namespace. In JSON mode each line
carries the verification context handed over through ``extra`` (code,
verdict, lookup name, task name...). Text mode appends the code and
verdict to the message so a terminal tail stays readable.

Usage:
    from kitverify.logging import get_logger
    logger = get_logger("verifier")
    logger.info("Verified", extra={"code": "CZ3984-100", "verdict": "uncertain"})
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Optional


LOG_LEVEL = os.getenv("KITVERIFY_LOG_LEVEL", "INFO").upper()
LOG_FORMAT = os.getenv("KITVERIFY_LOG_FORMAT", "json")  # "json" or "text"

# Context keys copied from ``extra`` onto a JSON line
EXTRA_FIELDS = (
    # verification
    "code", "brand", "brand_filter", "verdict", "confidence_score",
    "signal_id", "signals_count", "duration_ms",
    # batches
    "total", "valid", "invalid", "verdicts",
    # reference lookups and side effects
    "lookup", "subject", "store", "task", "error", "error_type",
    # http
    "status_code", "method", "path",
)


def _context(record: logging.LogRecord) -> dict:
    return {
        key: getattr(record, key)
        for key in EXTRA_FIELDS
        if getattr(record, key, None) is not None
    }


class JSONFormatter(logging.Formatter):
    """One JSON object per line, verification context inlined."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_context(record),
        }
        if record.exc_info and record.exc_info[0]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """Development format: ``time [LEVEL] logger: message (code=... verdict=...)``."""

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s [%(levelname)-8s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        tags = [
            f"{key}={getattr(record, key)}"
            for key in ("code", "verdict", "task")
            if getattr(record, key, None) is not None
        ]
        return f"{line} ({' '.join(tags)})" if tags else line


def setup_logging(level: Optional[str] = None, fmt: Optional[str] = None) -> logging.Logger:
    """
    Install a single stdout handler on the ``kitverify`` logger.

    Safe to call more than once: existing handlers are replaced.
    Arguments override KITVERIFY_LOG_LEVEL / KITVERIFY_LOG_FORMAT.
    """
    root = logging.getLogger("kitverify")
    root.setLevel(getattr(logging, (level or LOG_LEVEL).upper(), logging.INFO))
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter() if (fmt or LOG_FORMAT) == "json" else TextFormatter())
    root.addHandler(handler)

    # uvicorn's access log duplicates the request middleware
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    return root


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"kitverify.{name}")

"""Structured logging configuration.

Provides:
  - JSON-formatted log output for CI and batch runs
  - Human-readable colored output for development
  - Translation context (contract, stage) on every record
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from sol2promela.core.config import get_settings


class JSONFormatter(logging.Formatter):
    """Structured JSON log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.pathname:
            log_entry["module"] = record.module
            log_entry["function"] = record.funcName
            log_entry["line"] = record.lineno

        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else "Unknown",
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info),
            }

        for key in ("contract", "stage", "category", "duration_ms", "ledger_size", "error_code"):
            if hasattr(record, key):
                log_entry[key] = getattr(record, key)

        return json.dumps(log_entry, default=str)


class DevFormatter(logging.Formatter):
    """Colored human-readable formatter for development."""

    COLORS = {
        "DEBUG": "\033[36m",     # Cyan
        "INFO": "\033[32m",      # Green
        "WARNING": "\033[33m",   # Yellow
        "ERROR": "\033[31m",     # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        ts = datetime.now(timezone.utc).strftime("%H:%M:%S")
        prefix = f"{color}{ts} [{record.levelname:>8s}]{self.RESET}"
        msg = record.getMessage()

        contract = getattr(record, "contract", None)
        stage = getattr(record, "stage", None)
        if contract or stage:
            msg = f"[{contract or '-'}:{stage or '-'}] {msg}"

        base = f"{prefix} {record.name}: {msg}"
        if record.exc_info and record.exc_info[1]:
            base += "\n" + self.formatException(record.exc_info)
        return base


def setup_logging(env: str | None = None, log_level: str | None = None) -> None:
    """Configure logging for the translator.

    Args:
        env: Environment (development/staging/production); defaults to ``Settings.app_env``
        log_level: Minimum log level; defaults to ``Settings.log_level``
    """
    settings = get_settings()
    env = env or settings.app_env
    log_level = log_level or settings.log_level

    root = logging.getLogger()
    root.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    root.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    if env in ("staging", "production"):
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(DevFormatter())
    handler.addFilter(TranslationLogFilter())

    root.addHandler(handler)


class TranslationLogFilter(logging.Filter):
    """Filter that adds translation context to log records.

    Context passed per call through ``extra`` wins over the filter's.
    """

    def __init__(self, contract: str = "", stage: str = "") -> None:
        super().__init__()
        self.contract = contract
        self.stage = stage

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "contract", None):
            record.contract = self.contract  # type: ignore[attr-defined]
        if not getattr(record, "stage", None):
            record.stage = self.stage  # type: ignore[attr-defined]
        return True

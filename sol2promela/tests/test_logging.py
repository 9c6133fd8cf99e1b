"""Tests for sol2promela.core.logging — formatters and context filter."""

from __future__ import annotations

import json
import logging
import os
from unittest.mock import patch

import pytest

from sol2promela.core.config import get_settings
from sol2promela.core.logging import DevFormatter, JSONFormatter, TranslationLogFilter, setup_logging


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("sol2promela.test", logging.INFO, __file__, 10, "Stage %s", ("generate",), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.fixture
def restore_root():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


class TestFormatters:
    def test_json_carries_translation_context(self):
        entry = json.loads(JSONFormatter().format(_record(contract="Bank", stage="generate", ledger_size=3)))
        assert entry["message"] == "Stage generate"
        assert entry["level"] == "INFO"
        assert entry["contract"] == "Bank"
        assert entry["ledger_size"] == 3
        assert "error_code" not in entry

    def test_dev_prefixes_context(self):
        line = DevFormatter().format(_record(contract="Bank", stage="emit"))
        assert "[Bank:emit] Stage generate" in line


class TestSetup:
    def test_production_uses_json(self, restore_root):
        setup_logging("production", "debug")
        assert restore_root.level == logging.DEBUG
        assert isinstance(restore_root.handlers[0].formatter, JSONFormatter)

    def test_development_uses_dev_formatter(self, restore_root):
        setup_logging("development")
        assert len(restore_root.handlers) == 1
        assert isinstance(restore_root.handlers[0].formatter, DevFormatter)

    @patch.dict(os.environ, {"SOL2PROMELA_APP_ENV": "production", "SOL2PROMELA_LOG_LEVEL": "warning"})
    def test_defaults_come_from_settings(self, restore_root):
        get_settings.cache_clear()
        try:
            setup_logging()
        finally:
            get_settings.cache_clear()
        assert restore_root.level == logging.WARNING
        assert isinstance(restore_root.handlers[0].formatter, JSONFormatter)

    def test_handler_adds_empty_context(self, restore_root):
        setup_logging("production")
        handler = restore_root.handlers[0]
        record = _record()
        assert handler.filter(record)
        entry = json.loads(handler.format(record))
        assert entry["contract"] == ""
        assert entry["stage"] == ""


class TestFilter:
    def test_adds_missing_context(self):
        record = _record()
        assert TranslationLogFilter(contract="Bank", stage="agents").filter(record)
        assert record.contract == "Bank"
        assert record.stage == "agents"

    def test_keeps_per_call_context(self):
        record = _record(stage="emit")
        TranslationLogFilter(contract="Bank", stage="agents").filter(record)
        assert record.stage == "emit"

"""Logging setup used by the application factory."""

import json
import logging

from app.logging_config import JsonFormatter, setup_logging


def test_json_formatter_emits_one_object():
    record = logging.LogRecord("app.test", logging.WARNING, __file__, 1, "event %s failed", (7,), None)
    entry = json.loads(JsonFormatter().format(record))
    assert entry["level"] == "WARNING"
    assert entry["logger"] == "app.test"
    assert entry["message"] == "event 7 failed"


def test_setup_logging_replaces_root_handlers():
    setup_logging("DEBUG", "json")
    setup_logging("DEBUG", "json")
    root = logging.getLogger()
    assert len(root.handlers) == 1
    assert isinstance(root.handlers[0].formatter, JsonFormatter)
    assert root.level == logging.DEBUG
    assert logging.getLogger("httpx").level == logging.WARNING

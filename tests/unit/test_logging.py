from __future__ import annotations

import json
import logging

from edconnect_records.utils.logging import (
    JsonFormatter,
    _json_formatter,
    configure_logging,
    get_logger,
)

EXPECTED_SUCCESS = 10
EXPECTED_FAILED = 2


def _record(msg: str = "hello") -> logging.LogRecord:
    return logging.LogRecord(
        name="test.logger",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=msg,
        args=(),
        exc_info=None,
    )


def test_json_formatter_promotes_standard_extra_fields() -> None:
    record = _record()
    record.success = EXPECTED_SUCCESS
    record.collection = "blog_categories"

    payload = json.loads(_json_formatter(record))

    assert payload["level"] == "INFO"
    assert payload["logger"] == "test.logger"
    assert payload["message"] == "hello"
    assert payload["success"] == EXPECTED_SUCCESS
    assert payload["collection"] == "blog_categories"
    assert "pathname" not in payload
    assert "lineno" not in payload


def test_json_formatter_supports_legacy_nested_extra_field() -> None:
    record = _record()
    record.extra = {"failed": EXPECTED_FAILED}

    payload = json.loads(_json_formatter(record))

    assert payload["failed"] == EXPECTED_FAILED
    assert "extra" not in payload


def test_json_formatter_stringifies_unserialisable_values() -> None:
    record = _record()
    record.when = object()

    payload = json.loads(_json_formatter(record))

    assert payload["when"].startswith("<object")


def test_configure_logging_installs_json_handler_and_keeps_module_loggers() -> None:
    log = get_logger("edconnect_records.services.bulk_mutator")

    configure_logging(level="DEBUG", json_logs=True)

    root = logging.getLogger()
    assert root.level == logging.DEBUG
    assert any(isinstance(h.formatter, JsonFormatter) for h in root.handlers)
    assert not log.disabled


def test_configure_logging_without_force_keeps_existing_setup() -> None:
    configure_logging(level="DEBUG")

    configure_logging(level="WARNING", force=False)

    assert logging.getLogger().level == logging.DEBUG

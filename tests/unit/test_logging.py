from __future__ import annotations

import json
import logging
import sys

from recordseed.utils.logging import JsonFormatter, _json_formatter

EXPECTED_RECORDS = 10
EXPECTED_CHUNK_SIZE = 200


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
    record.records = EXPECTED_RECORDS
    record.entity = "Account"

    payload = json.loads(_json_formatter(record))

    assert payload["level"] == "INFO"
    assert payload["logger"] == "test.logger"
    assert payload["message"] == "hello"
    assert payload["records"] == EXPECTED_RECORDS
    assert payload["entity"] == "Account"
    assert "lineno" not in payload


def test_json_formatter_supports_legacy_nested_extra_field() -> None:
    record = _record()
    record.extra = {"chunk_size": EXPECTED_CHUNK_SIZE}

    payload = json.loads(_json_formatter(record))

    assert payload["chunk_size"] == EXPECTED_CHUNK_SIZE


def test_json_formatter_serializes_unknown_types_as_strings() -> None:
    record = _record("[ENTITY START] Account")
    record.targets = ("Account", "Contact")
    record.path = object()

    payload = json.loads(JsonFormatter().format(record))

    assert payload["targets"] == ["Account", "Contact"]
    assert isinstance(payload["path"], str)


def test_json_formatter_includes_exception_text() -> None:
    try:
        raise RuntimeError("create failed")
    except RuntimeError:
        record = logging.LogRecord(
            "test.logger", logging.ERROR, __file__, 1, "boom", (), sys.exc_info()
        )

    payload = json.loads(_json_formatter(record))

    assert "RuntimeError: create failed" in payload["exc_info"]

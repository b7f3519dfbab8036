"""Tests for the structured logging system (struct_mapper/logging_config.py)."""

import json
import logging
from dataclasses import dataclass
from io import StringIO

import numpy as np
import pytest

from struct_mapper.exceptions import MissingSourceFieldError
from struct_mapper.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)
from struct_mapper.mapping.engine import Mapper


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG)


def _make_handler() -> tuple[logging.Handler, StringIO]:
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    return handler, stream


def _parse_log(stream: StringIO) -> dict:
    """Parse the first JSON log line from a stream."""
    line = stream.getvalue().strip().split("\n")[0]
    return json.loads(line)


def _parse_all_logs(stream: StringIO) -> list[dict]:
    """Parse all JSON log lines from a stream."""
    lines = stream.getvalue().strip().split("\n")
    return [json.loads(line) for line in lines if line]


@dataclass
class _Source:
    name: str = ""


@dataclass
class _Dest:
    name: str = ""
    email: str = ""


# ---------------------------------------------------------------------------
# StructuredFormatter tests
# ---------------------------------------------------------------------------


class TestStructuredFormatter:
    """Tests for JSON log output format."""

    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "struct_mapper.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("mapped", extra={"error_count": 2, "scope": "a.b"})

        record = _parse_log(stream)
        assert record["error_count"] == 2
        assert record["scope"] == "a.b"

    def test_numpy_and_type_extras_encoded(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("coerced", extra={"value": np.int8(44), "shape": _Dest})

        record = _parse_log(stream)
        assert record["value"] == 44
        assert record["shape"] == "_Dest"

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(correlation_id="abc-123", map_id="map-456")
        get_logger("test").info("test_msg")

        record = _parse_log(stream)
        assert record["correlation_id"] == "abc-123"
        assert record["map_id"] == "map-456"

    def test_exception_fields(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise ValueError("boom")
        except ValueError:
            get_logger("test").error("failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "boom"
        assert "traceback" in record

    def test_mapper_exception_code_extracted(self):
        """Struct mapper exceptions carry a .code attribute and structured fields."""
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise MissingSourceFieldError("contact.phone")
        except MissingSourceFieldError:
            get_logger("test").error("mapping_error", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "MISSING_SOURCE_FIELD"
        assert record["exc_type"] == "MissingSourceFieldError"
        assert record["exc_path"] == "contact.phone"


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:
    def test_bind_restores_previous_values(self):
        LogContext.set(map_id="outer")
        with LogContext.bind(map_id="inner", dest_type="OrderDTO"):
            assert LogContext.get_all()["map_id"] == "inner"
            assert LogContext.get_all()["dest_type"] == "OrderDTO"
        assert LogContext.get_all() == {"map_id": "outer"}

    def test_clear(self):
        LogContext.set(correlation_id="c", source_type="Row")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_unknown_bind_keys_ignored(self):
        with LogContext.bind(not_a_field="x"):
            assert LogContext.get_all() == {}


# ---------------------------------------------------------------------------
# configure_logging tests
# ---------------------------------------------------------------------------


class TestConfigureLogging:
    def test_idempotent(self):
        handler, _ = _make_handler()
        configure_logging(handler=handler)
        configure_logging(handler=handler)
        assert len(logging.getLogger("struct_mapper").handlers) == 1

    def test_level_filters_debug(self):
        handler, stream = _make_handler()
        configure_logging(level=logging.INFO, handler=handler)
        get_logger("test").debug("hidden")
        assert stream.getvalue() == ""

    def test_reset_clears_handlers(self):
        handler, _ = _make_handler()
        configure_logging(handler=handler)
        reset_logging()
        root = logging.getLogger("struct_mapper")
        assert root.handlers == []
        assert root.propagate is True


# ---------------------------------------------------------------------------
# Engine log events
# ---------------------------------------------------------------------------


class TestEngineLogEvents:
    def test_successful_map_logs_start_and_completion(self):
        handler, stream = _make_handler()
        configure_logging(level=logging.DEBUG, handler=handler)
        Mapper(fail_on_missing_source_field=False).map(_Source("a"), _Dest())

        messages = [r["message"] for r in _parse_all_logs(stream)]
        assert messages[0] == "map_started"
        assert "map_completed_with_errors" in messages

    def test_map_context_fields_on_every_record(self):
        handler, stream = _make_handler()
        configure_logging(level=logging.DEBUG, handler=handler)
        Mapper(fail_on_missing_source_field=False).map(_Source("a"), _Dest())

        records = _parse_all_logs(stream)
        assert records
        map_ids = {r["map_id"] for r in records}
        assert len(map_ids) == 1
        assert all(r["source_type"] == "_Source" for r in records)
        assert all(r["dest_type"] == "_Dest" for r in records)
        # Context is unbound after the call
        assert LogContext.get_all() == {}

    def test_aborted_map_logged_with_error_code(self):
        handler, stream = _make_handler()
        configure_logging(level=logging.DEBUG, handler=handler)
        with pytest.raises(MissingSourceFieldError):
            Mapper().map(_Source("a"), _Dest())

        aborted = [r for r in _parse_all_logs(stream) if r["message"] == "map_aborted"]
        assert len(aborted) == 1
        assert aborted[0]["level"] == "WARNING"
        assert aborted[0]["error_code"] == "MISSING_SOURCE_FIELD"

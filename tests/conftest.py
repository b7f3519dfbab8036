"""
Pytest fixtures for the struct mapper test suite.

Provides:
- Structured logging configured at DEBUG for every test session
- A captured_logs fixture returning parsed JSON log records
- Mapper fixtures for the fail-fast and lenient policies
"""

import json
import logging
from io import StringIO

import pytest

from struct_mapper.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from struct_mapper.mapping.engine import Mapper


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture struct_mapper logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, lenient_mapper):
            lenient_mapper.map(source, dest)
            logs = captured_logs()
            assert any(r["message"] == "map_completed_with_errors" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("struct_mapper")
    previous_level = root.level
    root.addHandler(handler)
    root.setLevel(logging.DEBUG)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Mapper fixtures
# =============================================================================


@pytest.fixture
def strict_mapper() -> Mapper:
    """Fail fast on missing fields and on incompatible types."""
    return Mapper()


@pytest.fixture
def lenient_mapper() -> Mapper:
    """Collect every problem in the MappingResult instead of raising."""
    return Mapper(
        fail_on_missing_source_field=False,
        fail_on_incompatible_types=False,
    )

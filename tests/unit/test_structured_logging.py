"""Tests for flagcore/structured_logging.py."""

from __future__ import annotations

import json
import logging
import sys

import pytest

from flagcore.config import FeatureSettings
from flagcore.context import EvaluationContext
from flagcore.engine import FeatureEngine
from flagcore.stores import InMemoryFeatureStore
from flagcore.structured_logging import (
    StructuredFormatter,
    clear_request_context,
    configure_logging,
    context_key_var,
    feature_log_context,
    feature_var,
    request_id_var,
    set_request_context,
)


def make_record(message="hello", exc_info=None):
    return logging.LogRecord(
        name="flagcore.engine",
        level=logging.WARNING,
        pathname="engine.py",
        lineno=10,
        msg=message,
        args=(),
        exc_info=exc_info,
    )


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    root.handlers = handlers
    root.setLevel(level)


class TestStructuredFormatter:
    """Tests for StructuredFormatter."""

    def test_basic_fields(self):
        entry = json.loads(StructuredFormatter().format(make_record()))

        assert entry["level"] == "WARNING"
        assert entry["logger"] == "flagcore.engine"
        assert entry["message"] == "hello"
        assert entry["service"] == "flagcore"
        assert entry["location"]["line"] == 10
        assert "request_id" not in entry

    def test_request_context(self):
        set_request_context("req-9", feature="checkout", context_key="User:1")
        try:
            entry = json.loads(StructuredFormatter().format(make_record()))
        finally:
            clear_request_context()

        assert entry["request_id"] == "req-9"
        assert entry["feature"] == "checkout"
        assert entry["context"] == "User:1"

    def test_extra_fields_and_exception(self):
        try:
            raise ValueError("bad")
        except ValueError:
            record = make_record(exc_info=sys.exc_info())
        record.extra_fields = {"attempt": 2}

        entry = json.loads(StructuredFormatter().format(record))

        assert entry["extra"] == {"attempt": 2}
        assert entry["exception"]["type"] == "ValueError"
        assert entry["exception"]["message"] == "bad"


def test_set_request_context_generates_id():
    req_id = set_request_context()
    try:
        assert req_id
        assert request_id_var.get() == req_id
    finally:
        clear_request_context()


def test_configure_logging(restore_root_logger):
    configure_logging(FeatureSettings(LOG_LEVEL="debug", LOG_JSON=True))

    assert restore_root_logger.level == logging.DEBUG
    assert isinstance(restore_root_logger.handlers[0].formatter, StructuredFormatter)

    configure_logging(FeatureSettings(LOG_LEVEL="nonsense", LOG_JSON=False))

    assert restore_root_logger.level == logging.INFO
    assert not isinstance(restore_root_logger.handlers[0].formatter, StructuredFormatter)


class CollectingHandler(logging.Handler):
    """Formats records as they are emitted, while the context vars are live."""

    def __init__(self):
        super().__init__()
        self.setFormatter(StructuredFormatter())
        self.entries = []

    def emit(self, record):
        self.entries.append(json.loads(self.format(record)))


class TestFeatureLogContext:
    """Resolution tags log records with the feature and context."""

    @pytest.mark.asyncio
    async def test_records_logged_during_resolution(self):
        handler = CollectingHandler()
        resolver_logger = logging.getLogger("tests.resolver")
        resolver_logger.addHandler(handler)

        def resolver(ctx):
            resolver_logger.warning("resolving")
            return True

        engine = FeatureEngine(InMemoryFeatureStore(), settings=FeatureSettings())
        engine.define("checkout", resolver)
        try:
            assert await engine.is_active("checkout", EvaluationContext(1, "User"))
        finally:
            resolver_logger.removeHandler(handler)

        assert handler.entries[0]["feature"] == "checkout"
        assert handler.entries[0]["context"] == "User:1"
        assert feature_var.get() is None
        assert context_key_var.get() is None

    def test_nested_blocks_restore_outer_values(self):
        with feature_log_context("outer", "User:1"):
            with feature_log_context("inner", "User:2"):
                assert feature_var.get() == "inner"
            assert feature_var.get() == "outer"
            assert context_key_var.get() == "User:1"

        assert feature_var.get() is None

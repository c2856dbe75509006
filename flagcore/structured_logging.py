"""Structured logging configuration.

Features:
- JSON formatted logs for aggregation
- Unit-of-work correlation IDs
- Feature and context tagging
"""

from __future__ import annotations

import json
import logging
import sys
import traceback
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional

from flagcore.config import FeatureSettings, get_settings

# Context variables for unit-of-work tracking
request_id_var: ContextVar[Optional[str]] = ContextVar("flagcore_request_id", default=None)
feature_var: ContextVar[Optional[str]] = ContextVar("flagcore_feature", default=None)
context_key_var: ContextVar[Optional[str]] = ContextVar("flagcore_context", default=None)


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def __init__(
        self,
        service_name: str = "flagcore",
        environment: str = "production",
        include_stack_trace: bool = True,
    ):
        super().__init__()
        self.service_name = service_name
        self.environment = environment
        self.include_stack_trace = include_stack_trace

    def format(self, record: logging.LogRecord) -> str:
        log_entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service_name,
            "environment": self.environment,
        }

        log_entry["location"] = {
            "file": record.pathname,
            "line": record.lineno,
            "function": record.funcName,
        }

        if request_id := request_id_var.get():
            log_entry["request_id"] = request_id
        if feature := feature_var.get():
            log_entry["feature"] = feature
        if context_key := context_key_var.get():
            log_entry["context"] = context_key

        if hasattr(record, "extra_fields"):
            log_entry["extra"] = record.extra_fields

        if record.exc_info and self.include_stack_trace:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "stacktrace": traceback.format_exception(*record.exc_info),
            }

        return json.dumps(log_entry, default=str)


def setup_structured_logging(
    service_name: str = "flagcore",
    environment: str = "production",
    level: int = logging.INFO,
    json_output: bool = True,
) -> None:
    """Configure the root logger with one stdout handler."""
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)

    if json_output:
        formatter: logging.Formatter = StructuredFormatter(
            service_name=service_name,
            environment=environment,
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )

    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)


def configure_logging(settings: Optional[FeatureSettings] = None) -> None:
    """Apply ``LOG_LEVEL`` and ``LOG_JSON`` from settings."""
    settings = settings or get_settings()
    level = logging.getLevelName(settings.LOG_LEVEL.upper())
    if not isinstance(level, int):
        level = logging.INFO
    setup_structured_logging(level=level, json_output=settings.LOG_JSON)


def generate_request_id() -> str:
    return str(uuid.uuid4())


def set_request_context(
    request_id: Optional[str] = None,
    feature: Optional[str] = None,
    context_key: Optional[str] = None,
) -> str:
    """Set the logging context; returns the request id in use."""
    req_id = request_id or generate_request_id()
    request_id_var.set(req_id)
    if feature:
        feature_var.set(feature)
    if context_key:
        context_key_var.set(context_key)
    return req_id


def clear_request_context() -> None:
    request_id_var.set(None)
    feature_var.set(None)
    context_key_var.set(None)


@contextmanager
def feature_log_context(feature: str, context_key: Optional[str]) -> Iterator[None]:
    """Tag records logged inside the block with a feature and context key."""
    feature_token = feature_var.set(feature)
    context_token = context_key_var.set(context_key)
    try:
        yield
    finally:
        context_key_var.reset(context_token)
        feature_var.reset(feature_token)

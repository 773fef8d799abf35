"""Tests for observability/logger.py and observability/metrics.py"""

from __future__ import annotations

import json
import logging
import sys
import threading

from larkdown.observability import (
    MetricsHook,
    NoopMetricsHook,
    StructuredFormatter,
    get_logger,
    set_log_level,
)
from larkdown.observability.logger import ROOT_LOGGER


def _record(msg, level=logging.INFO, exc_info=None, extra_fields=None):
    record = logging.LogRecord(
        name="larkdown.test",
        level=level,
        pathname="",
        lineno=0,
        msg=msg,
        args=(),
        exc_info=exc_info,
    )
    if extra_fields is not None:
        record.extra_fields = extra_fields
    return record


class TestStructuredFormatter:
    def test_basic_format(self):
        result = json.loads(StructuredFormatter().format(_record("hello")))
        assert result["message"] == "hello"
        assert result["level"] == "INFO"
        assert result["logger"] == "larkdown.test"
        assert result["thread"] == threading.current_thread().name
        assert "ts" in result

    def test_extra_fields_merged(self):
        record = _record("msg", extra_fields={"document_id": "dox1", "blocks": 5})
        result = json.loads(StructuredFormatter().format(record))
        assert result["document_id"] == "dox1"
        assert result["blocks"] == 5

    def test_exception_included(self):
        try:
            raise ValueError("boom")
        except ValueError:
            exc_info = sys.exc_info()
        result = json.loads(StructuredFormatter().format(_record("failed", exc_info=exc_info)))
        assert "ValueError: boom" in result["exception"]

    def test_non_ascii_kept(self):
        line = StructuredFormatter().format(_record("文档已创建"))
        assert "文档已创建" in line

    def test_unserialisable_values_stringified(self):
        record = _record("msg", extra_fields={"event": threading.Event})
        assert "Event" in json.loads(StructuredFormatter().format(record))["event"]


class TestGetLogger:
    def test_single_root_handler(self):
        get_logger("larkdown.a")
        get_logger("larkdown.b")
        root = logging.getLogger(ROOT_LOGGER)
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, StructuredFormatter)
        assert root.propagate is False

    def test_children_propagate_to_root(self):
        logger = get_logger("larkdown.child")
        assert logger.handlers == []
        assert logger.parent is logging.getLogger(ROOT_LOGGER)

    def test_set_log_level_by_name(self):
        root = logging.getLogger(ROOT_LOGGER)
        previous = root.level
        try:
            set_log_level("debug")
            assert root.level == logging.DEBUG
            set_log_level(logging.ERROR)
            assert root.level == logging.ERROR
        finally:
            root.setLevel(previous)


class TestMetrics:
    def test_noop_satisfies_protocol(self):
        hook = NoopMetricsHook()
        assert isinstance(hook, MetricsHook)
        hook.increment("larkdown.requests_total", tags={"method": "GET"})
        hook.timing("larkdown.request_duration_ms", 1.5)
        hook.gauge("larkdown.queue", 3)

    def test_custom_hook_satisfies_protocol(self):
        class Recorder:
            def increment(self, name, value=1, tags=None):
                pass

            def timing(self, name, ms, tags=None):
                pass

            def gauge(self, name, value, tags=None):
                pass

        assert isinstance(Recorder(), MetricsHook)
        assert not isinstance(object(), MetricsHook)

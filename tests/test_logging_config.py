# tests/test_logging_config.py

import logging

from opentelemetry.sdk.trace import TracerProvider

from statpulse.logging_config import LOG_FORMAT, SafeFormatter, TraceIdFilter, configure_logging


def _record():
    return logging.LogRecord("statpulse.test", logging.INFO, __file__, 1, "probe done", None, None)


def test_filter_without_span_uses_placeholders():
    record = _record()

    assert TraceIdFilter().filter(record) is True
    assert record.trace_id == "-"
    assert record.span_id == "-"


def test_filter_inside_span_sets_ids():
    tracer = TracerProvider().get_tracer(__name__)
    record = _record()

    with tracer.start_as_current_span("probe.endpoint") as span:
        TraceIdFilter().filter(record)
        expected = format(span.get_span_context().trace_id, "032x")

    assert record.trace_id == expected
    assert len(record.span_id) == 16


def test_formatter_tolerates_unfiltered_records():
    line = SafeFormatter(LOG_FORMAT).format(_record())
    assert "[trace=- span=-] - probe done" in line


def test_configure_logging_quiets_httpx(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "debug")
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    try:
        configure_logging()

        assert root.level == logging.DEBUG
        assert logging.getLogger("httpx").level == logging.WARNING
        assert isinstance(root.handlers[0].formatter, SafeFormatter)
    finally:
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)


def test_configure_logging_twice_keeps_one_handler(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "debug")
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    try:
        configure_logging("warning")
        configure_logging("warning")

        assert len(root.handlers) == 1
        assert root.level == logging.WARNING
    finally:
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)

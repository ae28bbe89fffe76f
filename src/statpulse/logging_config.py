"""
Logging setup for the statpulse entry points.

Cron captures stdout as the job log, so everything goes to one stdout
handler. Each line carries the OpenTelemetry trace and span of the probe,
tick or report that emitted it, which ties a warning back to its span when
console tracing is on.
"""

import logging
import os
import sys
from typing import Optional

from opentelemetry import trace

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s [trace=%(trace_id)s span=%(span_id)s] - %(message)s"

NO_TRACE = "-"

# Loggers that log every request at INFO during a probing tick
NOISY_LOGGERS = ("httpx", "httpcore")


class TraceIdFilter(logging.Filter):
    """Stamp records with the ids of the active span, or "-" outside one."""

    def filter(self, record: logging.LogRecord) -> bool:
        ctx = trace.get_current_span().get_span_context()
        if ctx.is_valid:
            record.trace_id = trace.format_trace_id(ctx.trace_id)
            record.span_id = trace.format_span_id(ctx.span_id)
        else:
            record.trace_id = NO_TRACE
            record.span_id = NO_TRACE
        return True


class SafeFormatter(logging.Formatter):
    """Formatter for records that bypassed TraceIdFilter (e.g. third-party handlers)."""

    def format(self, record):
        for attr in ("trace_id", "span_id"):
            if not hasattr(record, attr):
                setattr(record, attr, NO_TRACE)
        return super().format(record)


def configure_logging(level: Optional[str] = None) -> None:
    """
    Install the stdout handler on the root logger.

    Level comes from the argument, then LOG_LEVEL, then INFO. Calling it
    again replaces the handler rather than stacking a second one.
    """
    log_level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(SafeFormatter(LOG_FORMAT))
    handler.addFilter(TraceIdFilter())

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

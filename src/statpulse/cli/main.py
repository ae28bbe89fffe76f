"""
Command-line entry points.

statpulse-check   run one probing tick (schedule every few hours)
statpulse-report  build and publish the weekly report (schedule weekly)

Both exit 0 on success, including a tick where endpoints were down or a
week with no data, and 1 on configuration or persistence failures.
"""

import argparse
import asyncio
import logging
import sys
from dataclasses import replace
from datetime import datetime, timezone
from typing import List, Optional

from statpulse.config import load_endpoint_config, load_settings
from statpulse.exceptions import StatpulseError
from statpulse.logging_config import configure_logging
from statpulse.metrics import export_metrics
from statpulse.repositories.health_log_repository import JsonFileHealthLog
from statpulse.services.anomaly_detection_service import AnomalyDetectionService
from statpulse.services.endpoint_probe_service import EndpointProbeService
from statpulse.services.health_check_service import HealthCheckService
from statpulse.services.report_publisher import build_publisher
from statpulse.services.weekly_report_service import WeeklyReportService
from statpulse.tracing import configure_tracing

logger = logging.getLogger(__name__)


def _export_metrics(settings) -> None:
    if not settings.metrics_file:
        return
    try:
        export_metrics(settings.metrics_file)
    except OSError as e:
        logger.warning("Could not write metrics file %s: %s", settings.metrics_file, e)


def _positive_days(value: str) -> float:
    try:
        days = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a number: {value!r}")
    if days <= 0:
        raise argparse.ArgumentTypeError(f"must be positive, got {value}")
    return days


async def run_check(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="statpulse-check", description="Probe all endpoints once and append to the health log."
    )
    parser.add_argument("--config", help="Endpoint configuration YAML (overrides STATPULSE_ENDPOINTS_FILE)")
    parser.add_argument("--log-path", help="Health log JSON file (overrides STATPULSE_LOG_PATH)")
    args = parser.parse_args(argv)

    try:
        settings = load_settings()
        config = load_endpoint_config(args.config or settings.endpoints_file, settings)
    except StatpulseError as e:
        logger.error("Configuration error: %s", e)
        return 1

    service = HealthCheckService(
        store=JsonFileHealthLog(args.log_path or settings.log_path),
        prober=EndpointProbeService(timeout_seconds=settings.probe_timeout_seconds),
        detector=AnomalyDetectionService(config.anomaly_policies),
    )

    try:
        await service.run_tick(config.endpoints)
    except StatpulseError as e:
        logger.error("Health check failed: %s", e)
        return 1
    finally:
        _export_metrics(settings)
    return 0


def run_report(argv: Optional[List[str]] = None, now: Optional[datetime] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="statpulse-report", description="Build the weekly health report and publish it."
    )
    parser.add_argument("--config", help="Endpoint configuration YAML (overrides STATPULSE_ENDPOINTS_FILE)")
    parser.add_argument("--log-path", help="Health log JSON file (overrides STATPULSE_LOG_PATH)")
    parser.add_argument(
        "--publisher", choices=["stdout", "file", "github"], default="stdout",
        help="Where to deliver the report (default: stdout)",
    )
    parser.add_argument("--output-dir", help="Directory for the file publisher (overrides STATPULSE_REPORT_DIR)")
    parser.add_argument("--days", type=_positive_days, help="Report window in days (overrides STATPULSE_REPORT_WINDOW_DAYS)")
    args = parser.parse_args(argv)

    # Fail on missing credentials before doing any work
    try:
        settings = load_settings()
        if args.output_dir:
            settings = replace(settings, report_dir=args.output_dir)
        config = load_endpoint_config(args.config or settings.endpoints_file, settings)
        publisher = build_publisher(args.publisher, settings)
    except StatpulseError as e:
        logger.error("Configuration error: %s", e)
        return 1

    records = JsonFileHealthLog(args.log_path or settings.log_path).load()
    service = WeeklyReportService(
        targets=config.kpi_targets,
        window_days=args.days if args.days is not None else settings.report_window_days,
    )
    report = service.build_report(records, now or datetime.now(timezone.utc))
    if report is None:
        _export_metrics(settings)
        return 0

    try:
        location = publisher.publish(report.title, report.body)
    except StatpulseError as e:
        logger.error("Report publishing failed: %s", e)
        return 1
    finally:
        _export_metrics(settings)

    logger.info("Weekly report (%s) published to %s", report.assessment.value, location)
    return 0


def check_main() -> None:
    configure_logging()
    configure_tracing()
    sys.exit(asyncio.run(run_check()))


def report_main() -> None:
    configure_logging()
    configure_tracing()
    sys.exit(run_report())

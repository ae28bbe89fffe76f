import logging

from prometheus_client import REGISTRY, Counter, Histogram, write_to_textfile

logger = logging.getLogger(__name__)

probe_checks_total = Counter(
    "statpulse_probe_checks_total",
    "Number of endpoint probes performed",
    ["endpoint", "outcome"],
)

probe_response_time_seconds = Histogram(
    "statpulse_probe_response_time_seconds",
    "Response time of successful endpoint probes in seconds",
    ["endpoint"],
    buckets=[0.1, 0.5, 1.0, 2.0, 3.0, 4.5, 10.0, 30.0],
)

metric_extraction_failures_total = Counter(
    "statpulse_metric_extraction_failures_total",
    "Number of successful responses whose catalogue metric could not be extracted",
    ["endpoint"],
)

anomalies_detected_total = Counter(
    "statpulse_anomalies_detected_total",
    "Number of measurements flagged as anomalous",
    ["endpoint", "metric", "severity"],
)

reports_generated_total = Counter(
    "statpulse_reports_generated_total",
    "Number of weekly reports built",
    ["assessment"],
)


def export_metrics(path: str) -> None:
    """Write the default registry in text format for the node-exporter textfile collector."""
    write_to_textfile(path, REGISTRY)
    logger.debug("Wrote metrics to %s", path)

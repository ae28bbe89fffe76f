"""
Rolling-baseline anomaly detection.

Each new measurement is compared with the mean of the same metric over a
bounded trailing window of strictly older records for the same endpoint.
Detection is a pure function of (history, current record); history is never
modified.
"""

import logging
import math
from dataclasses import dataclass
from datetime import timedelta
from typing import Dict, Iterable, List, Literal, Mapping, Optional, Sequence, Tuple

from opentelemetry import trace

from statpulse.metrics import anomalies_detected_total
from statpulse.models.measurement_record import (
    RESPONSE_TIME_METRIC,
    Anomaly,
    MeasurementRecord,
    Severity,
)

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

DEFAULT_POLICY_KEY = "default"


@dataclass(frozen=True)
class BaselinePolicy:
    """
    Tolerance bands for one metric.

    Args:
        mode: "percent" compares |current - baseline| / baseline * 100,
            "absolute" compares |current - baseline| directly.
        tolerance: Deviation up to and including this is normal.
        critical: Deviation above this is critical; between the two is a warning.
        window_size: Number of trailing observations in the baseline.
        max_age_days: Optionally ignore observations older than this,
            relative to the record being evaluated.
        min_history: Below this many baseline points there is no verdict.
    """

    mode: Literal["percent", "absolute"]
    tolerance: float
    critical: float
    window_size: int = 30
    max_age_days: Optional[float] = None
    min_history: int = 5

    def __post_init__(self):
        if self.mode not in ("percent", "absolute"):
            raise ValueError(f"Unknown baseline mode: {self.mode!r}")
        if self.tolerance < 0 or self.critical < 0:
            raise ValueError("Anomaly thresholds must be non-negative")
        if self.critical <= self.tolerance:
            raise ValueError(
                f"Critical band ({self.critical}) must be wider than tolerance ({self.tolerance})"
            )
        if self.window_size < 1:
            raise ValueError("window_size must be at least 1")
        if self.min_history < 1:
            raise ValueError("min_history must be at least 1")

    def deviation(self, current: float, baseline: float) -> float:
        delta = abs(current - baseline)
        if self.mode == "absolute":
            return delta
        if baseline == 0:
            return 0.0 if delta == 0 else math.inf
        return delta / abs(baseline) * 100

    def classify(self, deviation: float) -> Severity:
        if deviation <= self.tolerance:
            return Severity.NONE
        if deviation <= self.critical:
            return Severity.WARNING
        return Severity.CRITICAL


def default_policies() -> Dict[str, BaselinePolicy]:
    """Latency is judged relative to its baseline, catalogue counts by absolute drift."""
    return {
        RESPONSE_TIME_METRIC: BaselinePolicy(mode="percent", tolerance=50.0, critical=100.0),
        DEFAULT_POLICY_KEY: BaselinePolicy(mode="absolute", tolerance=5.0, critical=20.0),
    }


def compute_baseline(
    history: Iterable[MeasurementRecord],
    current: MeasurementRecord,
    metric: str,
    policy: BaselinePolicy,
) -> Optional[Tuple[float, int]]:
    """
    Mean of ``metric`` over the trailing window before ``current``.

    Only records of the same endpoint, strictly older than ``current`` and
    with the metric present are used. Returns (mean, sample_count), or None
    when there are no usable points.
    """
    cutoff = None
    if policy.max_age_days is not None:
        cutoff = current.timestamp - timedelta(days=policy.max_age_days)

    values: List[float] = []
    for record in history:
        if record.endpoint != current.endpoint or record.timestamp >= current.timestamp:
            continue
        if cutoff is not None and record.timestamp < cutoff:
            continue
        value = record.metric_value(metric)
        if value is not None:
            values.append(value)

    window = values[-policy.window_size:]
    if not window:
        return None
    return sum(window) / len(window), len(window)


class AnomalyDetectionService:
    """Attach baseline verdicts to fresh measurements."""

    def __init__(self, policies: Optional[Mapping[str, BaselinePolicy]] = None):
        merged = default_policies()
        if policies:
            merged.update(policies)
        self.policies = merged

    def policy_for(self, metric: str) -> BaselinePolicy:
        return self.policies.get(metric, self.policies[DEFAULT_POLICY_KEY])

    def evaluate_metric(
        self,
        history: Sequence[MeasurementRecord],
        record: MeasurementRecord,
        metric: str,
    ) -> Anomaly:
        current = record.metric_value(metric)
        if current is None:
            return Anomaly()

        policy = self.policy_for(metric)
        baseline = compute_baseline(history, record, metric, policy)
        if baseline is None or baseline[1] < policy.min_history:
            logger.debug(
                "Not enough history for %s/%s (%s points)",
                record.endpoint.value, metric, 0 if baseline is None else baseline[1],
            )
            return Anomaly(metric=metric)

        mean, _ = baseline
        deviation = policy.deviation(current, mean)
        severity = policy.classify(deviation)
        return Anomaly(
            detected=severity is not Severity.NONE,
            severity=severity,
            metric=metric,
            deviation=round(deviation, 2) if math.isfinite(deviation) else None,
            baseline=round(mean, 2),
        )

    def evaluate(self, history: Sequence[MeasurementRecord], record: MeasurementRecord) -> Anomaly:
        """
        Most severe verdict across the record's metrics.

        Latency is evaluated for ok records, plus the extracted catalogue
        metric when present. Ties go to the larger deviation.
        """
        with tracer.start_as_current_span("anomaly.evaluate") as span:
            span.set_attribute("endpoint", record.endpoint.value)

            metrics = [RESPONSE_TIME_METRIC]
            if record.extra_metric is not None:
                metrics.append(record.extra_metric.name)

            verdicts = [self.evaluate_metric(history, record, m) for m in metrics]
            worst = max(verdicts, key=_verdict_rank)

            if worst.detected:
                anomalies_detected_total.labels(
                    endpoint=record.endpoint.value,
                    metric=worst.metric,
                    severity=worst.severity.value,
                ).inc()
                logger.warning(
                    "Anomaly on %s: %s deviates %s from baseline %s (%s)",
                    record.endpoint.value, worst.metric, worst.deviation,
                    worst.baseline, worst.severity.value,
                )
                span.set_attribute("anomaly.severity", worst.severity.value)
            return worst

    def annotate(self, history: Sequence[MeasurementRecord], record: MeasurementRecord) -> MeasurementRecord:
        """Return a copy of ``record`` carrying its anomaly verdict."""
        return record.with_anomaly(self.evaluate(history, record))


def _verdict_rank(anomaly: Anomaly):
    deviation = anomaly.deviation if anomaly.deviation is not None else (
        math.inf if anomaly.detected else -1.0
    )
    return anomaly.severity.rank, deviation

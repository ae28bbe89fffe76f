from statpulse.models.endpoint import Endpoint, EndpointDescriptor, MetricExtractionRule
from statpulse.models.measurement_record import (
    RESPONSE_TIME_METRIC,
    Anomaly,
    ExtraMetric,
    MeasurementRecord,
    Severity,
)
from statpulse.models.stats import EndpointStats, KpiResult, KpiStatus, WeeklyReport

__all__ = [
    "RESPONSE_TIME_METRIC",
    "Anomaly",
    "Endpoint",
    "EndpointDescriptor",
    "EndpointStats",
    "ExtraMetric",
    "KpiResult",
    "KpiStatus",
    "MeasurementRecord",
    "MetricExtractionRule",
    "Severity",
    "WeeklyReport",
]

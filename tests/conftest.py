# tests/conftest.py
import pytest
from datetime import datetime, timedelta, timezone

from statpulse.models.endpoint import Endpoint, EndpointDescriptor, MetricExtractionRule
from statpulse.models.measurement_record import Anomaly, ExtraMetric, MeasurementRecord, Severity

# A Wednesday, so "week of" resolves to the Monday before
NOW = datetime(2026, 10, 21, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def make_record():
    """Factory for measurement records, timestamped relative to NOW."""

    def _make(
        endpoint=Endpoint.STRUCTURES,
        ok=True,
        response_time_ms=100,
        content_type_valid=True,
        extra=None,
        anomaly=None,
        minutes_ago=0,
        timestamp=None,
    ):
        if timestamp is None:
            timestamp = NOW - timedelta(minutes=minutes_ago)
        extra_metric = None
        if extra is not None:
            name, value = extra
            extra_metric = ExtraMetric(name=name, value=value)
        return MeasurementRecord(
            timestamp=timestamp,
            endpoint=endpoint,
            ok=ok,
            response_time_ms=response_time_ms if ok else None,
            status_code=200 if ok else None,
            content_type_valid=content_type_valid if ok else False,
            extra_metric=extra_metric if ok else None,
            anomaly=anomaly,
            error=None if ok else "Request timeout",
        )

    return _make


@pytest.fixture
def detected_anomaly():
    return Anomaly(
        detected=True,
        severity=Severity.WARNING,
        metric="dataStructures",
        deviation=10.0,
        baseline=2500.0,
    )


@pytest.fixture
def descriptors():
    """The three .Stat Suite endpoints pointed at a fake host."""
    return [
        EndpointDescriptor(
            endpoint=Endpoint.STRUCTURES,
            url="https://sdmx.example.org/rest/datastructure/all",
            expected_content_type=r"application/vnd\.sdmx\.structure\+json",
            metric=MetricExtractionRule(name="dataStructures", kind="json_count", path="data.dataStructures"),
        ),
        EndpointDescriptor(
            endpoint=Endpoint.DATA_QUERY,
            url="https://sdmx.example.org/rest/data/DF_QNA",
            expected_content_type=r"application/vnd\.sdmx\.data\+json",
        ),
        EndpointDescriptor(
            endpoint=Endpoint.CODELISTS,
            url="https://sdmx.example.org/rest/codelist/all",
            expected_content_type=r"application/vnd\.sdmx\.structure\+json",
            metric=MetricExtractionRule(name="codelists", kind="json_count", path="data.codelists"),
        ),
    ]


STATPULSE_ENV_VARS = [
    "STATPULSE_ENDPOINTS_FILE",
    "STATPULSE_LOG_PATH",
    "STATPULSE_PROBE_TIMEOUT_SECONDS",
    "STATPULSE_REPORT_WINDOW_DAYS",
    "STATPULSE_BASELINE_WINDOW",
    "STATPULSE_BASELINE_MIN_HISTORY",
    "STATPULSE_REPORT_DIR",
    "STATPULSE_METRICS_FILE",
    "GITHUB_TOKEN",
    "GITHUB_REPOSITORY",
    "GITHUB_API_URL",
]


@pytest.fixture
def clean_env(monkeypatch):
    """Drop statpulse and GitHub settings inherited from the shell."""
    for name in STATPULSE_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def anyio_backend():
    """The probe service is built on asyncio; run anyio tests on that backend only."""
    return "asyncio"

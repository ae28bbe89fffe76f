"""
MeasurementRecord: one timestamped observation of one endpoint.

Records are serialized with camelCase keys; the persisted log is read by the
dashboard as-is.
"""

import enum
from datetime import datetime, timezone
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from statpulse.models.endpoint import Endpoint

RESPONSE_TIME_METRIC = "responseTimeMs"


class Severity(str, enum.Enum):
    NONE = "none"
    WARNING = "warning"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {Severity.NONE: 0, Severity.WARNING: 1, Severity.CRITICAL: 2}


class _RecordModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class ExtraMetric(_RecordModel):
    """A named numeric value extracted from a response body."""

    name: str
    value: Union[int, float]


class Anomaly(_RecordModel):
    """Baseline comparison verdict attached to a record before it is logged."""

    detected: bool = False
    severity: Severity = Severity.NONE
    metric: Optional[str] = None
    deviation: Optional[float] = None
    baseline: Optional[float] = None


class MeasurementRecord(_RecordModel):
    timestamp: datetime
    endpoint: Endpoint
    ok: bool
    response_time_ms: Optional[int] = Field(default=None, ge=0)
    status_code: Optional[int] = None
    content_type_valid: bool = False
    extra_metric: Optional[ExtraMetric] = None
    anomaly: Optional[Anomaly] = None
    error: Optional[str] = None

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    @model_validator(mode="after")
    def check_latency_only_when_ok(self):
        if not self.ok and self.response_time_ms is not None:
            raise ValueError("responseTimeMs must be absent when ok is false")
        return self

    def metric_value(self, metric: str) -> Optional[float]:
        """Value of ``metric`` on this record, or None if absent."""
        if metric == RESPONSE_TIME_METRIC:
            return self.response_time_ms if self.ok else None
        if self.extra_metric is not None and self.extra_metric.name == metric:
            return self.extra_metric.value
        return None

    def with_anomaly(self, anomaly: Anomaly) -> "MeasurementRecord":
        return self.model_copy(update={"anomaly": anomaly})

    def to_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_dict(cls, data: dict) -> "MeasurementRecord":
        return cls.model_validate(data)

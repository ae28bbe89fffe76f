"""Derived aggregates for the weekly report. Never persisted."""

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from statpulse.models.endpoint import Endpoint


class KpiStatus(str, enum.Enum):
    ON_TARGET = "on_target"
    WARNING = "warning"
    CRITICAL = "critical"
    NO_DATA = "no_data"

    @property
    def glyph(self) -> str:
        return _GLYPHS[self]


_GLYPHS = {
    KpiStatus.ON_TARGET: "✅",
    KpiStatus.WARNING: "⚠️",
    KpiStatus.CRITICAL: "🔴",
    KpiStatus.NO_DATA: "—",
}


@dataclass(frozen=True)
class EndpointStats:
    endpoint: Endpoint
    total_checks: int = 0
    uptime_percent: Optional[float] = None
    avg_response_ms: Optional[int] = None
    min_response_ms: Optional[int] = None
    max_response_ms: Optional[int] = None
    anomaly_count: Optional[int] = None
    latest_extra_metric: Optional[float] = None
    latest_extra_metric_name: Optional[str] = None

    @property
    def has_data(self) -> bool:
        return self.total_checks > 0


@dataclass(frozen=True)
class KpiResult:
    name: str
    target_label: str
    observed: Optional[float]
    observed_label: str
    status: KpiStatus


@dataclass(frozen=True)
class WeeklyReport:
    title: str
    body: str
    period_start: datetime
    period_end: datetime
    total_checks: int
    assessment: KpiStatus
    endpoint_stats: Dict[Endpoint, EndpointStats] = field(default_factory=dict)
    kpis: List[KpiResult] = field(default_factory=list)

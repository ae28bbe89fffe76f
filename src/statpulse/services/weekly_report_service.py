"""
Weekly health report service.

Aggregates the health log over a trailing window into per-endpoint
statistics, classifies the results against fixed KPI targets and renders
a Markdown report for publishing.

Everything here is a pure function of the records and the injected ``now``,
so re-running on the same log and window gives byte-identical output.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, List, Literal, Optional, Sequence

from opentelemetry import trace

from statpulse.metrics import reports_generated_total
from statpulse.models.endpoint import Endpoint
from statpulse.models.measurement_record import MeasurementRecord
from statpulse.models.stats import EndpointStats, KpiResult, KpiStatus, WeeklyReport

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

DEFAULT_REPORT_WINDOW_DAYS = 7

Direction = Literal["higher", "lower"]

ASSESSMENT_TEXT = {
    KpiStatus.CRITICAL: "🔴 Critical: availability below acceptable threshold.",
    KpiStatus.WARNING: "⚠️ One or more KPI thresholds require attention. Review anomaly log.",
    KpiStatus.ON_TARGET: "✅ Platform health is within all KPI targets.",
}


@dataclass(frozen=True)
class KpiTargets:
    """
    KPI targets and critical bounds.

    Higher-is-better KPIs (uptime, content-type validity) are critical below
    their floor; average latency is critical above its ceiling.
    """

    uptime_pct: float = 99.5
    uptime_critical_pct: float = 95.0
    latency_ms: float = 3000
    latency_critical_ms: float = 4500
    content_type_validity_pct: float = 100.0
    content_type_critical_pct: float = 95.0

    def __post_init__(self):
        if self.uptime_critical_pct > self.uptime_pct:
            raise ValueError("Uptime critical floor must not exceed the uptime target")
        if self.content_type_critical_pct > self.content_type_validity_pct:
            raise ValueError("Content-type critical floor must not exceed its target")
        if self.latency_critical_ms < self.latency_ms:
            raise ValueError("Latency critical ceiling must not be below the latency target")


def round_half_up(value: float, places: int = 0) -> float:
    """Round like a human would (0.5 goes up), unlike the built-in round()."""
    exponent = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(exponent, rounding=ROUND_HALF_UP))


def _mean(values: Sequence[float]) -> Optional[float]:
    return sum(values) / len(values) if values else None


def filter_window(
    records: Iterable[MeasurementRecord],
    now: datetime,
    days: float = DEFAULT_REPORT_WINDOW_DAYS,
) -> List[MeasurementRecord]:
    """Records with a timestamp in [now - days, now], in log order."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    start = now - timedelta(days=days)
    return [r for r in records if start <= r.timestamp <= now]


def compute_endpoint_stats(records: Iterable[MeasurementRecord], endpoint: Endpoint) -> EndpointStats:
    """
    Statistics for one endpoint over an already-windowed set of records.

    Latency figures use only present response times, so timeouts never drag
    the averages. An endpoint with no records gets all-None statistics.
    """
    endpoint_records = [r for r in records if r.endpoint == endpoint]
    if not endpoint_records:
        return EndpointStats(endpoint=endpoint)

    ok_count = sum(1 for r in endpoint_records if r.ok)
    uptime = round_half_up(ok_count / len(endpoint_records) * 100, 2)

    times = [r.response_time_ms for r in endpoint_records if r.ok and r.response_time_ms is not None]
    avg = _mean(times)

    latest = endpoint_records[-1]
    return EndpointStats(
        endpoint=endpoint,
        total_checks=len(endpoint_records),
        uptime_percent=uptime,
        avg_response_ms=int(round_half_up(avg)) if avg is not None else None,
        min_response_ms=min(times) if times else None,
        max_response_ms=max(times) if times else None,
        anomaly_count=sum(1 for r in endpoint_records if r.anomaly is not None and r.anomaly.detected),
        latest_extra_metric=latest.extra_metric.value if latest.extra_metric else None,
        latest_extra_metric_name=latest.extra_metric.name if latest.extra_metric else None,
    )


def content_type_validity(records: Iterable[MeasurementRecord]) -> Optional[float]:
    """Share of ok responses (all endpoints combined) with the expected Content-Type."""
    ok_records = [r for r in records if r.ok]
    if not ok_records:
        return None
    valid = sum(1 for r in ok_records if r.content_type_valid)
    return round_half_up(valid / len(ok_records) * 100, 2)


def kpi_status(value: Optional[float], target: float, direction: Direction, critical: float) -> KpiStatus:
    """
    Three-level KPI verdict.

    For "higher" KPIs ``critical`` is a floor; for "lower" KPIs it is a ceiling.
    """
    if value is None:
        return KpiStatus.NO_DATA
    if direction == "higher":
        if value >= target:
            return KpiStatus.ON_TARGET
        if value < critical:
            return KpiStatus.CRITICAL
        return KpiStatus.WARNING
    if value <= target:
        return KpiStatus.ON_TARGET
    if value > critical:
        return KpiStatus.CRITICAL
    return KpiStatus.WARNING


def format_number(value) -> str:
    """Thousands separators for catalogue counts (2591 -> 2,591)."""
    if value is None:
        return "—"
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, int):
        return f"{value:,}"
    return f"{value:,.2f}"


def _fmt_pct(value: Optional[float]) -> str:
    return "—" if value is None else f"{value:.2f}%"


def _fmt_ms(value: Optional[float]) -> str:
    return "—" if value is None else f"{int(value)}ms"


def _fmt_target(value: float) -> str:
    return f"{int(value)}" if float(value).is_integer() else f"{value}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WeeklyReportService:
    """Build the weekly platform health report from the health log."""

    def __init__(
        self,
        targets: Optional[KpiTargets] = None,
        endpoints: Sequence[Endpoint] = tuple(Endpoint),
        window_days: float = DEFAULT_REPORT_WINDOW_DAYS,
    ):
        self.targets = targets or KpiTargets()
        self.endpoints = tuple(endpoints)
        self.window_days = window_days

    def compute_kpis(
        self,
        stats: Dict[Endpoint, EndpointStats],
        window_records: Sequence[MeasurementRecord],
    ) -> List[KpiResult]:
        t = self.targets

        # Endpoints without data are left out of the means, not counted as 0.
        uptimes = [s.uptime_percent for s in stats.values() if s.uptime_percent is not None]
        latencies = [s.avg_response_ms for s in stats.values() if s.avg_response_ms is not None]

        overall_uptime = _mean(uptimes)
        if overall_uptime is not None:
            overall_uptime = round_half_up(overall_uptime, 2)
        overall_latency = _mean(latencies)
        if overall_latency is not None:
            overall_latency = int(round_half_up(overall_latency))
        ct_validity = content_type_validity(window_records)

        return [
            KpiResult(
                name="API Availability",
                target_label=f"≥ {_fmt_target(t.uptime_pct)}%",
                observed=overall_uptime,
                observed_label=_fmt_pct(overall_uptime),
                status=kpi_status(overall_uptime, t.uptime_pct, "higher", t.uptime_critical_pct),
            ),
            KpiResult(
                name="Avg Response Time",
                target_label=f"≤ {_fmt_target(t.latency_ms)}ms",
                observed=overall_latency,
                observed_label=_fmt_ms(overall_latency),
                status=kpi_status(overall_latency, t.latency_ms, "lower", t.latency_critical_ms),
            ),
            KpiResult(
                name="Content-Type Validity",
                target_label=f"{_fmt_target(t.content_type_validity_pct)}%",
                observed=ct_validity,
                observed_label=_fmt_pct(ct_validity),
                status=kpi_status(
                    ct_validity, t.content_type_validity_pct, "higher", t.content_type_critical_pct
                ),
            ),
        ]

    def assess(
        self,
        stats: Dict[Endpoint, EndpointStats],
        kpis: Sequence[KpiResult],
        window_records: Sequence[MeasurementRecord],
    ) -> KpiStatus:
        """
        Overall verdict. Critical beats warning beats on-target:

        - critical if any endpoint's uptime is below the critical floor
        - warning if any KPI missed its target or any record has an anomaly
        """
        if any(
            s.uptime_percent is not None and s.uptime_percent < self.targets.uptime_critical_pct
            for s in stats.values()
        ):
            return KpiStatus.CRITICAL

        missed = any(k.status in (KpiStatus.WARNING, KpiStatus.CRITICAL) for k in kpis)
        anomalous = any(r.anomaly is not None and r.anomaly.detected for r in window_records)
        if missed or anomalous:
            return KpiStatus.WARNING
        return KpiStatus.ON_TARGET

    def build_report(
        self,
        records: Iterable[MeasurementRecord],
        now: Optional[datetime] = None,
    ) -> Optional[WeeklyReport]:
        """
        Build the report for the window ending at ``now``.

        Returns None when the window holds no records; an empty week is not
        an error but there is nothing to report.
        """
        now = now or _utcnow()
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        with tracer.start_as_current_span("report.build") as span:
            window_records = filter_window(records, now, self.window_days)
            span.set_attribute("report.records", len(window_records))

            if not window_records:
                logger.warning(
                    "No records found in the past %s days, skipping report", self.window_days
                )
                return None

            logger.info(
                "Found %s records in the past %s days", len(window_records), self.window_days
            )

            stats = {e: compute_endpoint_stats(window_records, e) for e in self.endpoints}
            kpis = self.compute_kpis(stats, window_records)
            assessment = self.assess(stats, kpis, window_records)

            period_start = now - timedelta(days=self.window_days)
            monday = (now - timedelta(days=now.weekday())).date()
            title = f"Weekly Platform Health Report — week of {monday.isoformat()}"
            body = self.render_markdown(
                stats, kpis, assessment, window_records, period_start, now
            )

            reports_generated_total.labels(assessment=assessment.value).inc()
            span.set_attribute("report.assessment", assessment.value)

            return WeeklyReport(
                title=title,
                body=body,
                period_start=period_start,
                period_end=now,
                total_checks=len(window_records),
                assessment=assessment,
                endpoint_stats=stats,
                kpis=kpis,
            )

    def render_markdown(
        self,
        stats: Dict[Endpoint, EndpointStats],
        kpis: Sequence[KpiResult],
        assessment: KpiStatus,
        window_records: Sequence[MeasurementRecord],
        period_start: datetime,
        period_end: datetime,
    ) -> str:
        total_checks = len(window_records)
        runs = int(round_half_up(total_checks / len(self.endpoints))) if self.endpoints else 0

        lines = [
            "## statpulse Weekly Health Report",
            "",
            f"**Period:** {period_start.date().isoformat()} → {period_end.date().isoformat()}",
            f"**Generated:** {period_end.strftime('%Y-%m-%dT%H:%M:%SZ')}",
            f"**Total checks:** {total_checks} ({len(self.endpoints)} endpoints × {runs} runs)",
            "",
            "### Endpoint Summary",
            "",
            "| Endpoint | Uptime | Avg Response | Min | Max | Anomalies |",
            "|---|---|---|---|---|---|",
        ]
        for endpoint in self.endpoints:
            s = stats[endpoint]
            lines.append(
                f"| {endpoint.value} | {_fmt_pct(s.uptime_percent)} | "
                f"{_fmt_ms(s.avg_response_ms)} | {_fmt_ms(s.min_response_ms)} | "
                f"{_fmt_ms(s.max_response_ms)} | {s.anomaly_count or 0} |"
            )

        lines += ["", "### Catalogue Metrics (latest)"]
        for endpoint in self.endpoints:
            if endpoint.catalogue_label is None:
                continue
            lines.append(
                f"- **{endpoint.catalogue_label}:** {format_number(stats[endpoint].latest_extra_metric)}"
            )

        lines += [
            "",
            "### Assessment",
            ASSESSMENT_TEXT[assessment],
            "",
            "### KPI Status",
            "",
            "| KPI | Target | This Week | Status |",
            "|---|---|---|---|",
        ]
        for kpi in kpis:
            lines.append(
                f"| {kpi.name} | {kpi.target_label} | {kpi.observed_label} | {kpi.status.glyph} |"
            )

        lines += [
            "",
            "---",
            "*Generated automatically by statpulse: SDMX API monitoring for the SIS-CC .Stat Suite platform.*",
        ]
        return "\n".join(lines)

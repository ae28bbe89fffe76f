"""
Health check service: one probing tick.

Loads history, probes every endpoint, evaluates each new measurement
against the history as it stood before the tick, then appends the batch.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from opentelemetry import trace

from statpulse.models.endpoint import EndpointDescriptor
from statpulse.models.measurement_record import MeasurementRecord
from statpulse.repositories.health_log_repository import HealthLogStore
from statpulse.services.anomaly_detection_service import AnomalyDetectionService
from statpulse.services.endpoint_probe_service import EndpointProbeService

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


@dataclass
class TickSummary:
    records: List[MeasurementRecord] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.records)

    @property
    def healthy(self) -> int:
        return sum(1 for r in self.records if r.ok)

    @property
    def unhealthy(self) -> int:
        return self.total - self.healthy

    @property
    def anomalies(self) -> int:
        return sum(1 for r in self.records if r.anomaly is not None and r.anomaly.detected)


class HealthCheckService:
    """Run one scheduled health check across all configured endpoints."""

    def __init__(
        self,
        store: HealthLogStore,
        prober: EndpointProbeService,
        detector: Optional[AnomalyDetectionService] = None,
    ):
        self.store = store
        self.prober = prober
        self.detector = detector or AnomalyDetectionService()

    async def run_tick(self, descriptors: Sequence[EndpointDescriptor]) -> TickSummary:
        """
        Probe, annotate and persist.

        Probe failures end up in the records; only a log write failure
        (HealthLogWriteError) escapes.
        """
        with tracer.start_as_current_span("health_check.tick") as span:
            history = self.store.load()
            logger.info(
                "Checking %s endpoint(s) against %s historical record(s)",
                len(descriptors), len(history),
            )

            measured = await self.prober.probe_all(descriptors)
            annotated = [self.detector.annotate(history, record) for record in measured]

            self.store.append_many(annotated)

            summary = TickSummary(records=annotated)
            span.set_attribute("tick.healthy", summary.healthy)
            span.set_attribute("tick.unhealthy", summary.unhealthy)
            span.set_attribute("tick.anomalies", summary.anomalies)
            logger.info(
                "Health check complete: %s healthy, %s unhealthy, %s anomalous",
                summary.healthy, summary.unhealthy, summary.anomalies,
            )
            return summary

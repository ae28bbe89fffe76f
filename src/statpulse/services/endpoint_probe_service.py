"""
Endpoint probing service.

Checks each configured .Stat Suite endpoint with a single bounded GET and
normalizes the outcome into a MeasurementRecord. Failures never escape:
a timeout or refused connection is a failed measurement, a malformed body
is a successful measurement with a quality defect.
"""

import asyncio
import logging
import re
import time
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence

import httpx
from opentelemetry import trace

from statpulse.metrics import (
    metric_extraction_failures_total,
    probe_checks_total,
    probe_response_time_seconds,
)
from statpulse.models.endpoint import EndpointDescriptor
from statpulse.models.measurement_record import ExtraMetric, MeasurementRecord
from statpulse.services.metric_extractors import MetricExtractionError, extract_metric

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0

# SDMX content negotiation
DEFAULT_ACCEPT = (
    "application/vnd.sdmx.structure+json;version=1.0, "
    "application/vnd.sdmx.data+json;version=1.0, "
    "application/json;q=0.9, */*;q=0.8"
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EndpointProbeService:
    """Probe endpoints and turn the outcome into measurement records."""

    def __init__(
        self,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.timeout_seconds = timeout_seconds
        self._client = client
        self._clock = clock

    @property
    def failed_latency_sentinel_ms(self) -> int:
        """
        Placeholder latency for failed checks, for consumers that cannot
        represent an absent value. Never stored on a record.
        """
        return int(self.timeout_seconds * 1000)

    async def probe_all(self, descriptors: Sequence[EndpointDescriptor]) -> List[MeasurementRecord]:
        """
        Probe every endpoint concurrently.

        Returns one record per descriptor, in descriptor order.
        """
        with tracer.start_as_current_span("probe.all") as span:
            span.set_attribute("endpoint.count", len(descriptors))

            if self._client is not None:
                return list(await asyncio.gather(
                    *(self._probe_with(self._client, d) for d in descriptors)
                ))

            async with httpx.AsyncClient(
                timeout=self.timeout_seconds,
                follow_redirects=True,
                headers={"Accept": DEFAULT_ACCEPT},
            ) as client:
                return list(await asyncio.gather(
                    *(self._probe_with(client, d) for d in descriptors)
                ))

    async def probe(self, descriptor: EndpointDescriptor) -> MeasurementRecord:
        """Probe a single endpoint."""
        return (await self.probe_all([descriptor]))[0]

    async def _probe_with(self, client: httpx.AsyncClient, descriptor: EndpointDescriptor) -> MeasurementRecord:
        with tracer.start_as_current_span("probe.endpoint") as span:
            name = descriptor.endpoint.value
            span.set_attribute("endpoint.name", name)
            span.set_attribute("endpoint.url", descriptor.url)

            timestamp = self._clock()
            started = time.perf_counter()

            # httpx timeouts are per phase and restart on every read chunk;
            # the deadline covers the whole request including the body.
            try:
                response = await asyncio.wait_for(
                    client.get(descriptor.url, timeout=self.timeout_seconds),
                    self.timeout_seconds,
                )
                body = response.content
            except (httpx.TimeoutException, asyncio.TimeoutError):
                logger.warning("%s timed out after %ss", name, self.timeout_seconds)
                return self._failed(descriptor, timestamp, error="Request timeout")
            except httpx.RequestError as e:
                logger.warning("%s transport failure: %s", name, e)
                return self._failed(descriptor, timestamp, error=f"Connection error: {e}")

            elapsed_ms = int(round((time.perf_counter() - started) * 1000))
            span.set_attribute("http.status_code", response.status_code)

            if not response.is_success:
                logger.warning("%s returned HTTP %s", name, response.status_code)
                return self._failed(
                    descriptor, timestamp,
                    error=f"HTTP {response.status_code}",
                    status_code=response.status_code,
                )

            content_type = response.headers.get("content-type", "")
            content_type_valid = bool(
                re.search(descriptor.expected_content_type, content_type, re.IGNORECASE)
            )
            if not content_type_valid:
                logger.warning(
                    "%s responded with unexpected Content-Type %r", name, content_type
                )

            extra_metric = None
            if descriptor.metric is not None:
                try:
                    value = extract_metric(descriptor.metric, body)
                    extra_metric = ExtraMetric(name=descriptor.metric.name, value=value)
                except MetricExtractionError as e:
                    metric_extraction_failures_total.labels(endpoint=name).inc()
                    logger.warning("%s: could not extract %s: %s", name, descriptor.metric.name, e)

            probe_checks_total.labels(endpoint=name, outcome="ok").inc()
            probe_response_time_seconds.labels(endpoint=name).observe(elapsed_ms / 1000.0)
            logger.debug("%s returned %s in %sms", name, response.status_code, elapsed_ms)

            return MeasurementRecord(
                timestamp=timestamp,
                endpoint=descriptor.endpoint,
                ok=True,
                response_time_ms=elapsed_ms,
                status_code=response.status_code,
                content_type_valid=content_type_valid,
                extra_metric=extra_metric,
            )

    def _failed(
        self,
        descriptor: EndpointDescriptor,
        timestamp: datetime,
        error: str,
        status_code: Optional[int] = None,
    ) -> MeasurementRecord:
        probe_checks_total.labels(endpoint=descriptor.endpoint.value, outcome="failed").inc()
        return MeasurementRecord(
            timestamp=timestamp,
            endpoint=descriptor.endpoint,
            ok=False,
            response_time_ms=None,
            status_code=status_code,
            content_type_valid=False,
            extra_metric=None,
            error=error,
        )

# tests/services/test_endpoint_probe_service.py

"""
Unit tests for EndpointProbeService.

HTTP is served by httpx.MockTransport so no request leaves the process.
"""

import asyncio
import json

import httpx
import pytest

from statpulse.models.endpoint import Endpoint
from statpulse.services.endpoint_probe_service import EndpointProbeService

# Configure anyio for async tests
pytestmark = pytest.mark.anyio

STRUCTURE_JSON = "application/vnd.sdmx.structure+json; version=1.0; charset=utf-8"
DATA_JSON = "application/vnd.sdmx.data+json; version=1.0"


def _service(handler, now, timeout=30.0):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return EndpointProbeService(timeout_seconds=timeout, client=client, clock=lambda: now)


def _structures_handler(request):
    body = {"data": {"dataStructures": [{"id": "DSD_A"}, {"id": "DSD_B"}]}}
    return httpx.Response(
        200, content=json.dumps(body).encode(), headers={"content-type": STRUCTURE_JSON}
    )


class TestProbe:
    """Tests for single-endpoint probing."""

    async def test_success_with_metric(self, descriptors, now):
        service = _service(_structures_handler, now)

        record = await service.probe(descriptors[0])

        assert record.ok is True
        assert record.endpoint is Endpoint.STRUCTURES
        assert record.timestamp == now
        assert record.status_code == 200
        assert record.response_time_ms is not None and record.response_time_ms >= 0
        assert record.content_type_valid is True
        assert record.extra_metric.name == "dataStructures"
        assert record.extra_metric.value == 2
        assert record.error is None
        assert record.anomaly is None

    async def test_content_type_matched_case_insensitively(self, descriptors, now):
        def handler(request):
            return httpx.Response(200, content=b"{}", headers={"content-type": "Application/VND.SDMX.Data+JSON"})

        record = await _service(handler, now).probe(descriptors[1])

        assert record.ok is True
        assert record.content_type_valid is True
        assert record.extra_metric is None

    async def test_unexpected_content_type_is_still_ok(self, descriptors, now):
        def handler(request):
            return httpx.Response(200, content=b"<html></html>", headers={"content-type": "text/html"})

        record = await _service(handler, now).probe(descriptors[0])

        assert record.ok is True
        assert record.content_type_valid is False
        assert record.response_time_ms is not None

    async def test_extraction_failure_keeps_ok(self, descriptors, now):
        def handler(request):
            return httpx.Response(200, content=b"not json", headers={"content-type": STRUCTURE_JSON})

        record = await _service(handler, now).probe(descriptors[0])

        assert record.ok is True
        assert record.content_type_valid is True
        assert record.extra_metric is None

    async def test_timeout_is_failed_measurement(self, descriptors, now):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        record = await _service(handler, now).probe(descriptors[0])

        assert record.ok is False
        assert record.response_time_ms is None
        assert record.content_type_valid is False
        assert record.extra_metric is None
        assert record.status_code is None
        assert record.error == "Request timeout"

    async def test_connection_refused_is_failed_measurement(self, descriptors, now):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        record = await _service(handler, now).probe(descriptors[2])

        assert record.ok is False
        assert record.endpoint is Endpoint.CODELISTS
        assert record.response_time_ms is None
        assert record.error.startswith("Connection error")

    async def test_server_error_is_failed_measurement(self, descriptors, now):
        def handler(request):
            return httpx.Response(503, content=b"Service Unavailable")

        record = await _service(handler, now).probe(descriptors[1])

        assert record.ok is False
        assert record.status_code == 503
        assert record.response_time_ms is None
        assert record.error == "HTTP 503"

    async def test_slow_body_past_deadline_is_timeout(self, descriptors, now):
        async def drip():
            for _ in range(8):
                await asyncio.sleep(0.05)
                yield b"{"

        def handler(request):
            return httpx.Response(200, content=drip(), headers={"content-type": STRUCTURE_JSON})

        record = await _service(handler, now, timeout=0.2).probe(descriptors[0])

        assert record.ok is False
        assert record.response_time_ms is None
        assert record.error == "Request timeout"

    async def test_slow_headers_past_deadline_is_timeout(self, descriptors, now):
        async def handler(request):
            await asyncio.sleep(1)
            return httpx.Response(200, content=b"{}", headers={"content-type": STRUCTURE_JSON})

        record = await _service(handler, now, timeout=0.1).probe(descriptors[0])

        assert record.ok is False
        assert record.error == "Request timeout"


class TestProbeAll:
    """Tests for a full round of probes."""

    async def test_one_record_per_descriptor_in_order(self, descriptors, now):
        def handler(request):
            if "codelist" in request.url.path:
                raise httpx.ConnectError("refused", request=request)
            if "datastructure" in request.url.path:
                return _structures_handler(request)
            return httpx.Response(200, content=b"{}", headers={"content-type": DATA_JSON})

        records = await _service(handler, now).probe_all(descriptors)

        assert [r.endpoint for r in records] == [
            Endpoint.STRUCTURES, Endpoint.DATA_QUERY, Endpoint.CODELISTS
        ]
        assert [r.ok for r in records] == [True, True, False]

    async def test_empty_descriptor_list(self, now):
        records = await _service(_structures_handler, now).probe_all([])
        assert records == []


def test_failed_latency_sentinel_matches_timeout():
    assert EndpointProbeService(timeout_seconds=30).failed_latency_sentinel_ms == 30000
    assert EndpointProbeService(timeout_seconds=2.5).failed_latency_sentinel_ms == 2500

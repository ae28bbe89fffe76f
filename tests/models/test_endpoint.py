# tests/models/test_endpoint.py

import pytest
from pydantic import ValidationError

from statpulse.models.endpoint import Endpoint, EndpointDescriptor, MetricExtractionRule
from statpulse.models.stats import KpiStatus


def test_endpoint_values_are_display_names():
    assert [e.value for e in Endpoint] == ["Structures", "Data Query", "Codelists"]


def test_catalogue_labels():
    assert Endpoint.STRUCTURES.catalogue_label == "Data Structures (DSDs)"
    assert Endpoint.CODELISTS.catalogue_label == "Codelists"
    assert Endpoint.DATA_QUERY.catalogue_label is None


def test_descriptor_from_config_mapping():
    descriptor = EndpointDescriptor.model_validate({
        "endpoint": "Codelists",
        "url": "https://sdmx.example.org/rest/codelist/all",
        "expected_content_type": "application/vnd\\.sdmx\\.structure\\+json",
        "metric": {"name": "codelists", "kind": "json_count", "path": "data.codelists"},
    })

    assert descriptor.endpoint is Endpoint.CODELISTS
    assert descriptor.metric == MetricExtractionRule(
        name="codelists", kind="json_count", path="data.codelists"
    )


def test_unknown_extraction_kind_rejected():
    with pytest.raises(ValidationError):
        MetricExtractionRule(name="codelists", kind="csv_rows", path="x")


def test_kpi_glyphs():
    assert KpiStatus.ON_TARGET.glyph == "✅"
    assert KpiStatus.WARNING.glyph == "⚠️"
    assert KpiStatus.CRITICAL.glyph == "🔴"
    assert KpiStatus.NO_DATA.glyph == "—"

# src/statpulse/services/metric_extractors.py
import json
import xml.etree.ElementTree as ET
from typing import Any, Union

from statpulse.models.endpoint import MetricExtractionRule

Number = Union[int, float]


class MetricExtractionError(ValueError):
    """The response body did not contain the configured metric."""


def extract_metric(rule: MetricExtractionRule, body: bytes) -> Number:
    """
    Pull the numeric value described by ``rule`` out of a response body.

    Raises MetricExtractionError when the body cannot be parsed or the
    path does not lead to a usable value.
    """
    if rule.kind == "xml_count":
        return _xml_count(body, rule.path)

    document = _parse_json(body)
    found = _walk(document, rule.path)

    if rule.kind == "json_count":
        if not isinstance(found, (list, dict)):
            raise MetricExtractionError(f"'{rule.path}' is not a collection")
        return len(found)

    # json_value
    if isinstance(found, bool) or not isinstance(found, (int, float)):
        raise MetricExtractionError(f"'{rule.path}' is not a number")
    return found


def _parse_json(body: bytes) -> Any:
    try:
        return json.loads(body)
    except (ValueError, UnicodeDecodeError) as e:
        raise MetricExtractionError(f"Body is not valid JSON: {e}") from e


def _walk(document: Any, path: str) -> Any:
    current = document
    for key in path.split("."):
        if isinstance(current, dict) and key in current:
            current = current[key]
        elif isinstance(current, list) and key.isdigit() and int(key) < len(current):
            current = current[int(key)]
        else:
            raise MetricExtractionError(f"Path '{path}' not found (stopped at '{key}')")
    return current


def _xml_count(body: bytes, local_name: str) -> int:
    try:
        root = ET.fromstring(body)
    except ET.ParseError as e:
        raise MetricExtractionError(f"Body is not valid XML: {e}") from e

    # SDMX-ML elements are namespaced ({ns}Codelist); match on the local name
    return sum(1 for el in root.iter() if el.tag.rsplit("}", 1)[-1] == local_name)

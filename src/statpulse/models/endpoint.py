"""
Endpoint model.

The set of probed endpoints is fixed; URLs, content types and extraction
rules for each come from the endpoint configuration file.
"""

import enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class Endpoint(str, enum.Enum):
    """Probed .Stat Suite endpoints."""

    STRUCTURES = "Structures"
    DATA_QUERY = "Data Query"
    CODELISTS = "Codelists"

    @property
    def catalogue_label(self) -> Optional[str]:
        """Label of the catalogue-size metric this endpoint reports, if any."""
        return _CATALOGUE_LABELS.get(self)


_CATALOGUE_LABELS = {
    Endpoint.STRUCTURES: "Data Structures (DSDs)",
    Endpoint.CODELISTS: "Codelists",
}


MetricKind = Literal["json_count", "json_value", "xml_count"]


class MetricExtractionRule(BaseModel):
    """
    How to pull a numeric metric out of a successful response body.

    - json_count: length of the list found at ``path`` (dotted keys)
    - json_value: number found at ``path``
    - xml_count: number of elements whose local name is ``path``
    """

    model_config = ConfigDict(frozen=True)

    name: str
    kind: MetricKind
    path: str


class EndpointDescriptor(BaseModel):
    """Everything the prober needs to check one endpoint."""

    model_config = ConfigDict(frozen=True)

    endpoint: Endpoint
    url: str
    expected_content_type: str = Field(
        description="Regex matched case-insensitively against the Content-Type header"
    )
    metric: Optional[MetricExtractionRule] = None

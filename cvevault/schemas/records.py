"""Pydantic schemas for vulnerability records and the records endpoints."""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# Severity categories derived from the CVSS base score.
SeverityLevel = Literal["CRITICAL", "HIGH", "MEDIUM", "LOW", "UNKNOWN"]

SEVERITY_VALUES: tuple[SeverityLevel, ...] = (
    "CRITICAL",
    "HIGH",
    "MEDIUM",
    "LOW",
    "UNKNOWN",
)


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys; accepts either spelling on input."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class VulnerabilityRecord(CamelModel):
    """Local shape of one upstream vulnerability entry."""

    id: int | None = Field(
        default=None,
        description="Surrogate key assigned by the store on first insert.",
    )
    external_id: str = Field(
        ...,
        min_length=1,
        max_length=64,
        description="Upstream identifier (e.g. CVE-2024-0001); unique in the store.",
    )
    description: str = Field(default="", description="Free-text description.")
    severity: SeverityLevel = Field(
        default="UNKNOWN",
        description="Severity category derived from the score.",
    )
    score: float = Field(
        default=0.0,
        ge=0,
        le=10,
        description="CVSS base score in range 0.0–10.0; 0 means not scored.",
    )
    published_at: str = Field(default="", description="Upstream publish timestamp (ISO-8601).")
    modified_at: str = Field(default="", description="Upstream last-modified timestamp (ISO-8601).")
    raw: dict[str, Any] = Field(
        default_factory=dict,
        description="Upstream payload for this record, preserved verbatim.",
    )


class RecordsResponse(CamelModel):
    """Response for GET /records."""

    message: str
    count: int = Field(..., ge=0)
    data: list[VulnerabilityRecord] = Field(default_factory=list)


class RecordResponse(CamelModel):
    """Response for GET /records/{external_id}."""

    message: str
    data: VulnerabilityRecord

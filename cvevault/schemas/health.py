"""Pydantic schemas for health check responses."""

from pydantic import Field

from cvevault.schemas.records import CamelModel


class DatabaseHealth(CamelModel):
    """Store connectivity and size."""

    connected: bool = Field(description="True when the store answers a trivial query")
    total_cves: int | None = Field(
        default=None,
        alias="totalCVEs",
        description="Number of stored records; omitted when the store is unreachable",
    )


class HealthResponse(CamelModel):
    """Response body for the health check endpoint."""

    message: str = Field(default="OK", description="Service status")
    database: DatabaseHealth
    timestamp: str = Field(description="Server time (ISO-8601, UTC)")

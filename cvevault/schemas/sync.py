"""Pydantic schemas for sync requests, results, progress, and status."""

from typing import Literal

from pydantic import Field

from cvevault.schemas.records import CamelModel

SyncPhase = Literal["fetching", "storing", "complete"]

# external_id used for the single error entry of a run whose fetch step failed.
SYNC_ERROR_ID = "SYNC_ERROR"


class RecordError(CamelModel):
    """One record that could not be fetched or stored."""

    external_id: str = Field(..., description="Upstream identifier, or SYNC_ERROR for run-level failures.")
    message: str


class SyncRequest(CamelModel):
    """Body for POST /sync."""

    background: bool = Field(
        default=False,
        description="Return 202 immediately and run the sync as a background task.",
    )


class SyncResult(CamelModel):
    """Outcome of a finished sync run (the engine's last result)."""

    success: bool
    message: str
    fetched: int = Field(default=0, ge=0)
    stored: int = Field(default=0, ge=0)
    errors: list[RecordError] = Field(default_factory=list)
    timestamp: str = Field(..., description="Run start time (ISO-8601, UTC).")


class BackgroundSyncResponse(CamelModel):
    """202 response for POST /sync with background=true."""

    success: Literal[True] = True
    message: str
    background: Literal[True] = True
    timestamp: str


class SyncProgress(CamelModel):
    """Snapshot of the active run."""

    phase: SyncPhase
    current: int = Field(..., ge=0)
    total: int = Field(..., ge=0)
    percentage: int = Field(..., ge=0, le=100)
    fetched: int = Field(..., ge=0)
    stored: int = Field(..., ge=0)
    error_count: int = Field(..., ge=0)
    started_at: str
    elapsed_seconds: float = Field(..., ge=0)
    eta_seconds: float | None = Field(
        default=None,
        description="(elapsed / current) * (total - current); null while current is 0.",
    )


class SyncStatus(CamelModel):
    """Response for GET /sync/status."""

    is_running: bool
    last_sync: SyncResult | None = None
    progress: SyncProgress | None = None

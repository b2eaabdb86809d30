"""Pydantic request/response schemas."""

from cvevault.schemas.health import DatabaseHealth, HealthResponse
from cvevault.schemas.records import (
    RecordResponse,
    RecordsResponse,
    SeverityLevel,
    VulnerabilityRecord,
)
from cvevault.schemas.sync import (
    BackgroundSyncResponse,
    RecordError,
    SyncProgress,
    SyncRequest,
    SyncResult,
    SyncStatus,
)

__all__ = [
    "BackgroundSyncResponse",
    "DatabaseHealth",
    "HealthResponse",
    "RecordError",
    "RecordResponse",
    "RecordsResponse",
    "SeverityLevel",
    "SyncProgress",
    "SyncRequest",
    "SyncResult",
    "SyncStatus",
    "VulnerabilityRecord",
]

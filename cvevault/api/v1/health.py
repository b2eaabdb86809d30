"""Health check endpoint with database connectivity and record count."""

import logging
from datetime import UTC, datetime
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException

from cvevault.api.deps import get_store
from cvevault.core.exceptions import StorageError
from cvevault.schemas.health import DatabaseHealth, HealthResponse
from cvevault.services.store import RecordStore

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("", response_model=HealthResponse, response_model_exclude_none=True)
def get_health(store: Annotated[RecordStore, Depends(get_store)]) -> HealthResponse:
    """
    Return service health, database connectivity and the number of stored records.
    Used by load balancers and monitoring.
    """
    try:
        connected = store.health()
        total = store.count() if connected else None
    except StorageError as e:
        logger.error("Health check failed: %s", e.message)
        raise HTTPException(status_code=500, detail="Health check failed") from e

    return HealthResponse(
        message="OK",
        database=DatabaseHealth(connected=connected, total_cves=total),
        timestamp=datetime.now(UTC).isoformat(),
    )

"""Sync endpoints: trigger a blocking or background sync and read its status."""

import logging
from datetime import UTC, datetime
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse

from cvevault.api.deps import get_sync_engine
from cvevault.core.exceptions import ConflictError, StorageError
from cvevault.schemas.sync import BackgroundSyncResponse, SyncRequest, SyncResult, SyncStatus
from cvevault.services.sync import SyncEngine
from cvevault.services.upstream import UpstreamFetchError

logger = logging.getLogger(__name__)
router = APIRouter()

# Upstream failure kind -> HTTP status returned to the caller.
_FETCH_ERROR_STATUS = {
    "timeout": 408,
    "network": 503,
    "upstream_4xx": 502,
    "upstream_5xx": 502,
    "invalid_response": 502,
}


@router.post(
    "",
    response_model=SyncResult,
    responses={
        202: {"model": BackgroundSyncResponse, "description": "Background sync started"},
        408: {"description": "Upstream request timed out"},
        409: {"description": "A sync is already running"},
        502: {"description": "Upstream returned an error or an invalid payload"},
        503: {"description": "Upstream is unreachable"},
    },
)
async def post_sync(
    engine: Annotated[SyncEngine, Depends(get_sync_engine)],
    body: SyncRequest | None = None,
):
    """
    Fetch the upstream feed and upsert every record.

    - **Blocking** (default): waits for the run and returns fetched/stored counts
      plus per-record errors. Storage errors on single records do not fail the run.
    - **Background** (`{"background": true}`): returns 202 immediately; poll
      GET /sync/status for progress.

    Only one sync runs at a time; a second request gets 409 and may retry later.
    """
    background = body.background if body is not None else False
    timestamp = datetime.now(UTC).isoformat()

    if background:
        try:
            engine.sync_background()
        except ConflictError as e:
            raise HTTPException(status_code=409, detail=e.message) from e
        payload = BackgroundSyncResponse(
            message="Sync started in background. Poll /sync/status for progress.",
            timestamp=timestamp,
        )
        return JSONResponse(status_code=202, content=payload.model_dump(by_alias=True))

    try:
        return await engine.sync_blocking()
    except ConflictError as e:
        raise HTTPException(status_code=409, detail=e.message) from e
    except UpstreamFetchError as e:
        status = _FETCH_ERROR_STATUS.get(e.kind, 502)
        logger.error(
            "Sync request failed",
            extra={"reason": e.message[:500], "kind": e.kind, "status_code": status},
        )
        raise HTTPException(status_code=status, detail=e.message) from e
    except StorageError as e:
        logger.error("Sync request failed", extra={"reason": e.message[:500], "status_code": 500})
        raise HTTPException(status_code=500, detail=e.message) from e


@router.get("/status", response_model=SyncStatus, response_model_exclude_none=True)
async def get_sync_status(
    engine: Annotated[SyncEngine, Depends(get_sync_engine)],
) -> SyncStatus:
    """Return whether a sync is running, its progress, and the last finished result."""
    return engine.get_status()

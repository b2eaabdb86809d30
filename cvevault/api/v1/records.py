"""Records endpoints: full table read and lookup by upstream identifier."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException

from cvevault.api.deps import get_store
from cvevault.core.exceptions import StorageError
from cvevault.schemas.records import RecordResponse, RecordsResponse
from cvevault.services.store import RecordStore

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("", response_model=RecordsResponse)
def list_records(store: Annotated[RecordStore, Depends(get_store)]) -> RecordsResponse:
    """
    Return every stored record, newest publish date first.

    An empty store (e.g. while the initial sync is still running) yields an
    empty list, not an error.
    """
    try:
        records = store.get_all()
    except StorageError as e:
        logger.error("Failed to read records: %s", e.message)
        raise HTTPException(status_code=500, detail="Failed to read records") from e
    return RecordsResponse(
        message=f"Retrieved {len(records)} records",
        count=len(records),
        data=records,
    )


@router.get("/{external_id}", response_model=RecordResponse)
def get_record(
    external_id: str,
    store: Annotated[RecordStore, Depends(get_store)],
) -> RecordResponse:
    """Return one record by its upstream identifier (e.g. CVE-2024-0001)."""
    try:
        record = store.get_by_external_id(external_id.strip())
    except StorageError as e:
        logger.error("Failed to read record %s: %s", external_id, e.message)
        raise HTTPException(status_code=500, detail="Failed to read record") from e
    if record is None:
        raise HTTPException(status_code=404, detail=f"Record {external_id} not found")
    return RecordResponse(message=f"Retrieved {record.external_id}", data=record)

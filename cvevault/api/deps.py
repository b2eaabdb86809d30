"""Request dependencies resolving the store and sync engine created at startup."""

from fastapi import Request

from cvevault.services.store import RecordStore
from cvevault.services.sync import SyncEngine


def get_store(request: Request) -> RecordStore:
    """Dependency: the RecordStore attached to app.state by the lifespan handler."""
    return request.app.state.store


def get_sync_engine(request: Request) -> SyncEngine:
    """Dependency: the process-wide SyncEngine attached to app.state."""
    return request.app.state.sync_engine

"""API v1 routes."""

from fastapi import APIRouter

from cvevault.api.v1 import health, records, sync

router = APIRouter()
router.include_router(health.router, prefix="/health", tags=["health"])
router.include_router(records.router, prefix="/records", tags=["records"])
router.include_router(sync.router, prefix="/sync", tags=["sync"])

"""FastAPI application entrypoint. No business logic; only wiring, middleware and lifespan."""

from dotenv import load_dotenv

load_dotenv()

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from cvevault.api.v1 import router as v1_router
from cvevault.core.config import Settings, settings
from cvevault.core.database import SessionLocal
from cvevault.core.exceptions import StorageError
from cvevault.services.store import RecordStore
from cvevault.services.sync import SyncEngine
from cvevault.services.upstream import UpstreamFetcher

logger = logging.getLogger(__name__)


def build_fetcher(config: Settings) -> UpstreamFetcher:
    """Upstream fetcher configured from settings."""
    api_key = config.NVD_API_KEY.get_secret_value() if config.NVD_API_KEY else None
    return UpstreamFetcher(
        base_url=config.NVD_API_URL,
        page_size=config.NVD_PAGE_SIZE,
        timeout=config.NVD_REQUEST_TIMEOUT_SEC,
        api_key=api_key,
        page_delay=config.NVD_PAGE_DELAY_SEC,
    )


async def _run_startup_sync(sync_engine: SyncEngine, config: Settings) -> None:
    """Populate an empty store without holding up request handling."""
    try:
        await sync_engine.startup_sync(background=config.STARTUP_SYNC_BACKGROUND)
    except Exception as e:
        logger.exception("Startup sync failed: %s", e)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the store (fatal if it cannot be opened), build the sync engine, start the initial sync."""
    store = RecordStore(SessionLocal)
    try:
        store.init_schema()
    except StorageError as e:
        logger.critical("Cannot open storage at %s: %s", settings.DATABASE_URL, e.message)
        raise
    if not store.health():
        logger.critical("Storage at %s is not reachable", settings.DATABASE_URL)
        raise StorageError(f"Storage at {settings.DATABASE_URL} is not reachable")

    sync_engine = SyncEngine(store, build_fetcher(settings), batch_size=settings.SYNC_BATCH_SIZE)
    app.state.store = store
    app.state.sync_engine = sync_engine

    startup_task: asyncio.Task | None = None
    if settings.STARTUP_SYNC_ENABLED:
        startup_task = asyncio.create_task(_run_startup_sync(sync_engine, settings))
    try:
        yield
    finally:
        if startup_task is not None and not startup_task.done():
            startup_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await startup_task
        await sync_engine.shutdown()


app = FastAPI(
    title="cvevault API",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS or (["*"] if settings.APP_ENV == "dev" else []),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(v1_router, prefix=settings.API_PREFIX)


@app.get("/")
def root() -> dict[str, str]:
    """Root route; minimal payload for discovery."""
    return {"message": "cvevault API"}

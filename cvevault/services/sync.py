"""Sync engine: fetch the upstream feed, store it, and expose progress and the last result.

One engine instance owns one SyncState. At most one run is active per engine;
the running flag is checked and set synchronously (no await in between), so a
second caller on the same event loop always sees it.
"""

import asyncio
import contextlib
import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime

from cvevault.core.exceptions import ConflictError, StorageError
from cvevault.schemas.records import VulnerabilityRecord
from cvevault.schemas.sync import (
    SYNC_ERROR_ID,
    RecordError,
    SyncPhase,
    SyncProgress,
    SyncResult,
    SyncStatus,
)
from cvevault.services.store import DEFAULT_BATCH_SIZE, RecordStore
from cvevault.services.upstream import FetchProgress, UpstreamFetcher

logger = logging.getLogger(__name__)


def _reason(error: Exception) -> str:
    """Human-readable failure reason; our own errors carry a .message."""
    return getattr(error, "message", None) or str(error) or type(error).__name__


@dataclass
class SyncRun:
    """Mutable bookkeeping of the active run; turned into a SyncResult when it ends."""

    started_at: datetime
    started_clock: float
    phase: SyncPhase = "fetching"
    fetched_count: int = 0
    rejected_count: int = 0
    stored_count: int = 0
    store_error_count: int = 0
    total_expected: int = 0
    errors: list[RecordError] = field(default_factory=list)
    store_tasks: list[asyncio.Task] = field(default_factory=list)

    @property
    def timestamp(self) -> str:
        return self.started_at.isoformat()

    def progress(self, now: float) -> SyncProgress:
        """Snapshot for the status API; fetch counts while fetching, store counts afterwards."""
        if self.phase == "fetching":
            current = self.fetched_count + self.rejected_count
            total = max(self.total_expected, current)
        else:
            current = self.stored_count + self.store_error_count
            total = max(self.fetched_count, current)
        elapsed = max(0.0, now - self.started_clock)
        eta = (elapsed / current) * (total - current) if current > 0 else None
        if total == 0:
            percentage = 0 if self.phase == "fetching" else 100
        else:
            percentage = round(current / total * 100)
        return SyncProgress(
            phase=self.phase,
            current=current,
            total=total,
            percentage=percentage,
            fetched=self.fetched_count,
            stored=self.stored_count,
            error_count=len(self.errors),
            started_at=self.timestamp,
            elapsed_seconds=elapsed,
            eta_seconds=eta,
        )


@dataclass
class SyncState:
    """Process-level sync state, held by the engine rather than at module level."""

    is_running: bool = False
    current_run: SyncRun | None = None
    last_result: SyncResult | None = None
    task: asyncio.Task | None = None


class SyncEngine:
    """
    Orchestrates fetch -> normalize -> store.

    sync_blocking waits for the whole run; sync_background returns a task right
    away and stores each fetched page while the next one is being fetched.
    Store calls run in worker threads so reads keep being served meanwhile.
    """

    def __init__(
        self,
        store: RecordStore,
        fetcher: UpstreamFetcher,
        batch_size: int = DEFAULT_BATCH_SIZE,
        clock: Callable[[], float] = time.monotonic,
        state: SyncState | None = None,
    ) -> None:
        self._store = store
        self._fetcher = fetcher
        self._batch_size = batch_size
        self._clock = clock
        self.state = state if state is not None else SyncState()

    @property
    def is_running(self) -> bool:
        return self.state.is_running

    def _acquire(self) -> SyncRun:
        if self.state.is_running:
            raise ConflictError()
        run = SyncRun(started_at=datetime.now(UTC), started_clock=self._clock())
        self.state.is_running = True
        self.state.current_run = run
        return run

    def _release(self, run: SyncRun) -> None:
        self.state.is_running = False
        if self.state.current_run is run:
            self.state.current_run = None
        logger.info("[%s] Sync operation finished", run.timestamp)

    def _complete(self, run: SyncRun) -> SyncResult:
        run.phase = "complete"
        if run.fetched_count == 0 and run.rejected_count == 0:
            message = "No records received from upstream"
        else:
            message = f"Successfully synced {run.stored_count} records"
            if run.errors:
                message += f" with {len(run.errors)} errors"
        result = SyncResult(
            success=True,
            message=message,
            fetched=run.fetched_count,
            stored=run.stored_count,
            errors=list(run.errors),
            timestamp=run.timestamp,
        )
        self.state.last_result = result
        logger.info(
            "Sync completed",
            extra={
                "sync_status": "success" if not run.errors else "partial",
                "fetched": run.fetched_count,
                "stored": run.stored_count,
                "error_count": len(run.errors),
                "elapsed_seconds": self._clock() - run.started_clock,
            },
        )
        return result

    def _fail(self, run: SyncRun, reason: str) -> SyncResult:
        result = SyncResult(
            success=False,
            message=f"Sync operation failed: {reason}",
            fetched=run.fetched_count,
            stored=run.stored_count,
            errors=[RecordError(external_id=SYNC_ERROR_ID, message=reason)],
            timestamp=run.timestamp,
        )
        self.state.last_result = result
        logger.error(
            "Sync failed",
            extra={
                "sync_status": "failure",
                "fetched": run.fetched_count,
                "stored": run.stored_count,
                "reason": reason[:500],
            },
        )
        return result

    async def _store_chunk(self, run: SyncRun, records: Sequence[VulnerabilityRecord]) -> None:
        """Upsert one chunk in a worker thread and fold the outcome into the run."""
        try:
            outcome = await asyncio.to_thread(self._store.upsert_batch, records, self._batch_size)
        except Exception as e:
            message = _reason(e)
            logger.exception("Failed to store chunk of %s records: %s", len(records), message)
            run.store_error_count += len(records)
            run.errors.extend(
                RecordError(external_id=r.external_id, message=message) for r in records
            )
            return
        run.stored_count += outcome.inserted_count
        run.store_error_count += len(outcome.errors)
        run.errors.extend(outcome.errors)
        logger.info("Progress: stored %s/%s records", run.stored_count, run.fetched_count)

    async def _drain(self, run: SyncRun) -> None:
        """Wait for every chunk-store task scheduled so far."""
        while run.store_tasks:
            pending = list(run.store_tasks)
            run.store_tasks.clear()
            await asyncio.gather(*pending)

    async def sync_blocking(self, url: str | None = None) -> SyncResult:
        """
        Run a full sync and return its result.

        Raises ConflictError when a run is already active. Fetch errors
        (UpstreamFetchError) and an unhealthy store (StorageError) are recorded
        as a failed last result and re-raised; per-record store errors are not.
        """
        run = self._acquire()
        logger.info("[%s] Starting sync operation", run.timestamp, extra={"mode": "blocking"})
        try:
            healthy = await asyncio.to_thread(self._store.health)
            if not healthy:
                raise StorageError("Database is not healthy - cannot proceed with sync")

            rejected: list[RecordError] = []
            records = await self._fetcher.fetch_all(url, rejected=rejected)
            run.fetched_count = len(records)
            run.rejected_count = len(rejected)
            run.total_expected = len(records) + len(rejected)
            run.errors.extend(rejected)
            logger.info("Fetched %s records, starting storage", len(records))

            run.phase = "storing"
            for start in range(0, len(records), self._batch_size):
                await self._store_chunk(run, records[start : start + self._batch_size])
            return self._complete(run)
        except Exception as e:
            self._fail(run, _reason(e))
            raise
        finally:
            self._release(run)

    def sync_background(self, url: str | None = None) -> asyncio.Task:
        """
        Start a sync as a task on the running loop and return it immediately.

        Raises ConflictError when a run is already active. The task resolves to
        the run's SyncResult; fetch failures are recorded, not raised.
        """
        run = self._acquire()
        try:
            task = asyncio.get_running_loop().create_task(self._run_background(run, url))
        except RuntimeError:
            self._release(run)
            raise
        self.state.task = task
        return task

    async def _run_background(self, run: SyncRun, url: str | None) -> SyncResult:
        logger.info("[%s] Starting sync operation", run.timestamp, extra={"mode": "background"})

        def on_progress(progress: FetchProgress) -> None:
            run.fetched_count += len(progress.records)
            run.rejected_count += len(progress.rejected)
            run.total_expected = progress.total
            run.errors.extend(progress.rejected)
            if progress.records:
                run.store_tasks.append(
                    asyncio.create_task(self._store_chunk(run, progress.records))
                )
            logger.info(
                "Sync fetch progress",
                extra={
                    "current": progress.current,
                    "total": progress.total,
                    "percentage": progress.percentage,
                },
            )

        try:
            try:
                await self._fetcher.fetch_all_chunked(
                    url,
                    chunk_size=self._fetcher.page_size,
                    on_progress=on_progress,
                )
            except Exception as e:
                # Records from pages that did arrive are still stored before the run is closed.
                await self._drain(run)
                return self._fail(run, _reason(e))
            run.phase = "storing"
            await self._drain(run)
            return self._complete(run)
        finally:
            self._release(run)
            if self.state.task is asyncio.current_task():
                self.state.task = None

    def get_status(self) -> SyncStatus:
        """In-memory status; never touches the store."""
        run = self.state.current_run
        return SyncStatus(
            is_running=self.state.is_running,
            last_sync=self.state.last_result,
            progress=run.progress(self._clock()) if run is not None else None,
        )

    async def wait(self) -> SyncResult | None:
        """Wait for the active background run, if any, and return the last result."""
        task = self.state.task
        if task is not None:
            await asyncio.shield(task)
        return self.state.last_result

    async def startup_sync(self, url: str | None = None, background: bool = True) -> bool:
        """
        Trigger one sync when the store is empty; return True if a sync was started.

        A non-empty store makes this a no-op. Store errors while counting propagate.
        """
        total = await asyncio.to_thread(self._store.count)
        if total > 0:
            logger.info("Store already contains %s records, skipping initial sync", total)
            return False
        logger.info("Store is empty, performing initial sync", extra={"background": background})
        if background:
            self.sync_background(url)
        else:
            await self.sync_blocking(url)
        return True

    async def shutdown(self) -> None:
        """Cancel an active background run at process teardown."""
        task = self.state.task
        run = self.state.current_run
        if task is None or task.done():
            return
        logger.warning("Shutting down while a sync is running; cancelling it")
        task.cancel()
        if run is not None:
            for store_task in run.store_tasks:
                store_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        # A task cancelled before its first step never reaches its own finally block.
        if run is not None and self.state.current_run is run:
            self._release(run)
        self.state.task = None

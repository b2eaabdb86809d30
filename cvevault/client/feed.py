"""Live record feed: loads records, follows background syncs and refreshes periodically."""

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Literal

from cvevault.client.api import ApiError, CveApiClient, RequestConfig
from cvevault.client.network import NetworkState
from cvevault.schemas.records import VulnerabilityRecord
from cvevault.schemas.sync import BackgroundSyncResponse, SyncResult

logger = logging.getLogger(__name__)

LoadingState = Literal["idle", "loading", "success", "error"]
DisplayStatus = Literal["idle", "loading", "ready", "warning", "error"]

DEFAULT_POLL_INTERVAL_SEC = 2.0
DEFAULT_REFRESH_INTERVAL_SEC = 30.0

# Records are always read live; deduplication still applies.
_RECORDS_CONFIG = RequestConfig(enable_cache=False)
_STATUS_CONFIG = RequestConfig(enable_retry=False, enable_cache=False)


class RecordsFeed:
    """
    Record list as seen by a UI, kept current while syncs run.

    loading and error describe explicit (non-silent) loads only. Silent
    refetches from polling, the periodic refresh or reconnection leave them
    alone and report failures in refresh_error instead.
    """

    def __init__(
        self,
        api: CveApiClient,
        poll_interval: float = DEFAULT_POLL_INTERVAL_SEC,
        refresh_interval: float = DEFAULT_REFRESH_INTERVAL_SEC,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._api = api
        self.poll_interval = poll_interval
        self.refresh_interval = refresh_interval
        self._sleep = sleep

        self.records: list[VulnerabilityRecord] = []
        self.loading: LoadingState = "idle"
        self.error: ApiError | None = None
        self.refresh_error: ApiError | None = None
        self.has_loaded = False
        self.last_sync_response: SyncResult | BackgroundSyncResponse | None = None

        self._poll_task: asyncio.Task | None = None
        self._refresh_task: asyncio.Task | None = None
        self._reconnect_task: asyncio.Task | None = None
        self._unsubscribe = api.network.add_listener(self._on_network_change)

    @property
    def is_polling(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    @property
    def display_status(self) -> DisplayStatus:
        """
        What the UI should render.

        error blocks the view and is only used when nothing has loaded yet;
        warning means stale records are shown while the latest refresh failed.
        """
        if not self.has_loaded:
            if self.loading == "loading":
                return "loading"
            if self._last_error() is not None:
                return "error"
            return "idle"
        if self._last_error() is not None:
            return "warning"
        return "ready"

    def _last_error(self) -> ApiError | None:
        return self.refresh_error or self.error

    async def refetch(self, silent: bool = False) -> bool:
        """Reload the full record list; return True on success."""
        if not silent:
            self.loading = "loading"
            self.error = None
        try:
            records = await self._api.get_records(_RECORDS_CONFIG)
        except ApiError as e:
            logger.warning(
                "Failed to fetch records",
                extra={"silent": silent, "status": e.status, "connectivity": e.is_connectivity},
            )
            if silent:
                self.refresh_error = e
            else:
                self.error = e
                self.loading = "error"
            return False
        self.records = records
        self.has_loaded = True
        self.error = None
        self.refresh_error = None
        if not silent or self.loading == "error":
            self.loading = "success"
        return True

    async def trigger_sync(self, background: bool = True) -> SyncResult | BackgroundSyncResponse:
        """Start a sync on the server, begin polling its status and reload the records."""
        self.loading = "loading"
        self.error = None
        try:
            response = await self._api.trigger_sync(background=background)
        except ApiError as e:
            logger.error("Failed to trigger sync: %s", e.message)
            self.error = e
            self.loading = "error"
            raise
        self.last_sync_response = response
        self.start_polling()
        await self.refetch()
        return response

    def start_polling(self) -> None:
        if self.is_polling:
            return
        self._poll_task = asyncio.get_running_loop().create_task(self._poll_loop())

    async def stop_polling(self) -> None:
        task = self._poll_task
        self._poll_task = None
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def poll_once(self) -> bool:
        """
        One polling step: check sync status and silently refetch.

        Returns True while the sync is still running. A failed status check
        counts as still running so polling continues.
        """
        try:
            status = await self._api.get_sync_status(_STATUS_CONFIG)
        except ApiError as e:
            logger.warning("Error during sync status polling: %s", e.message)
            return True
        await self.refetch(silent=True)
        return status.is_running

    async def _poll_loop(self) -> None:
        while True:
            await self._sleep(self.poll_interval)
            if not await self.poll_once():
                logger.info("Sync finished, stopped polling", extra={"records": len(self.records)})
                return

    async def _refresh_loop(self) -> None:
        while True:
            await self._sleep(self.refresh_interval)
            await self.refetch(silent=True)

    async def start(self) -> None:
        """Initial load, resume polling if a sync is already running, and start periodic refresh."""
        await self.refetch()
        try:
            status = await self._api.get_sync_status(_STATUS_CONFIG)
        except ApiError as e:
            logger.warning("Error checking initial sync status: %s", e.message)
        else:
            if status.is_running:
                self.start_polling()
        if self._refresh_task is None or self._refresh_task.done():
            self._refresh_task = asyncio.get_running_loop().create_task(self._refresh_loop())

    def _on_network_change(self, state: NetworkState) -> None:
        last_error = self._last_error()
        if not state.is_online or last_error is None or not last_error.is_connectivity:
            return
        if self._reconnect_task is not None and not self._reconnect_task.done():
            return
        logger.info("Connection restored, refetching records")
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop; skipping reconnect refetch")
            return
        self._reconnect_task = loop.create_task(self.refetch(silent=self.has_loaded))

    async def aclose(self) -> None:
        """Stop background work and detach from the network monitor."""
        self._unsubscribe()
        await self.stop_polling()
        for task in (self._refresh_task, self._reconnect_task):
            if task is not None and not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        self._refresh_task = None
        self._reconnect_task = None

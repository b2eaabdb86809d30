"""HTTP client for the cvevault API with response caching, request deduplication and retry."""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from typing import Any, TypeVar

import httpx

from cvevault.client.cache import DEFAULT_CACHE_TTL_SEC, MISSING, ApiCache, create_cache_key
from cvevault.client.network import NetworkMonitor
from cvevault.schemas.health import HealthResponse
from cvevault.schemas.records import RecordResponse, RecordsResponse, VulnerabilityRecord
from cvevault.schemas.sync import BackgroundSyncResponse, SyncResult, SyncStatus

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TIMEOUT_SEC = 10.0
MAX_RETRY_ATTEMPTS = 3
OFFLINE_MESSAGE = "No internet connection"

RECORDS_PATH = "/records"
SYNC_PATH = "/sync"
SYNC_STATUS_PATH = "/sync/status"
HEALTH_PATH = "/health"

STATUS_CACHE_TTL_SEC = 5.0
HEALTH_CACHE_TTL_SEC = 30.0


class ApiError(Exception):
    """
    Failed API call.

    status is the HTTP status when the server answered, None for transport
    failures. connectivity marks failures caused by being offline or unable
    to reach the server at all.
    """

    def __init__(
        self,
        message: str,
        status: int | None = None,
        error: Any = None,
        connectivity: bool = False,
    ) -> None:
        self.message = message
        self.status = status
        self.error = error
        self.connectivity = connectivity
        super().__init__(message)

    @property
    def is_retryable(self) -> bool:
        """Server errors and transport failures are retryable; 4xx never is."""
        return self.status is None or self.status >= 500

    @property
    def is_connectivity(self) -> bool:
        return self.connectivity


@dataclass(frozen=True)
class RequestConfig:
    enable_retry: bool = True
    retry_attempts: int = MAX_RETRY_ATTEMPTS
    retry_delay: float = 1.0
    max_retry_delay: float = 10.0
    jitter: float = 1.0
    enable_cache: bool = True
    cache_ttl: float = DEFAULT_CACHE_TTL_SEC
    deduplication: bool = True


def calculate_retry_delay(
    attempt: int,
    base: float = 1.0,
    cap: float = 10.0,
    jitter: float = 1.0,
    rng: Callable[[], float] = random.random,
) -> float:
    """Exponential backoff: min(base * 2**attempt + jitter * rng(), cap)."""
    return min(base * (2**attempt) + jitter * rng(), cap)


class RequestExecutor:
    """
    Runs request coroutines through the cache, the in-flight map and the retry loop.

    sleep and rng are injected so tests can run retries without real delays.
    """

    def __init__(
        self,
        cache: ApiCache,
        network: NetworkMonitor,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: Callable[[], float] = random.random,
    ) -> None:
        self.cache = cache
        self.network = network
        self._sleep = sleep
        self._rng = rng

    async def request(
        self,
        key: str | None,
        fn: Callable[[], Awaitable[T]],
        config: RequestConfig | None = None,
    ) -> T:
        """
        Return the cached value for key, join an in-flight request for key, or call fn.

        A key of None bypasses both the cache and deduplication.
        """
        config = config or RequestConfig()
        if key is not None and config.enable_cache:
            cached = self.cache.get(key)
            if cached is not MISSING:
                return cached
        if key is not None and config.deduplication:
            pending = self.cache.get_pending(key)
            if pending is not None:
                logger.debug("Joining in-flight request for %s", key)
                return await asyncio.shield(pending)

        task = asyncio.ensure_future(self._run(key, fn, config))
        if key is not None and config.deduplication:
            self.cache.set_pending(key, task)
        return await asyncio.shield(task)

    async def _run(self, key: str | None, fn: Callable[[], Awaitable[T]], config: RequestConfig) -> T:
        current = asyncio.current_task()
        try:
            result = await self._with_retry(fn, config)
            if key is not None and config.enable_cache:
                self.cache.set(key, result, config.cache_ttl)
            return result
        finally:
            if key is not None:
                self.cache.delete_pending(key, current)

    async def _with_retry(self, fn: Callable[[], Awaitable[T]], config: RequestConfig) -> T:
        attempt = 0
        while True:
            try:
                if not self.network.is_online:
                    raise ApiError(OFFLINE_MESSAGE, connectivity=True)
                return await fn()
            except ApiError as e:
                if not (config.enable_retry and attempt < config.retry_attempts and e.is_retryable):
                    raise
                delay = calculate_retry_delay(
                    attempt,
                    config.retry_delay,
                    config.max_retry_delay,
                    config.jitter,
                    self._rng,
                )
                logger.warning(
                    "Request failed, retrying",
                    extra={"attempt": attempt + 1, "delay_seconds": delay, "status": e.status},
                )
                await self._sleep(delay)
                attempt += 1


def _error_message(response: httpx.Response) -> tuple[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return f"Request failed with status {response.status_code}", response.text
    if isinstance(body, dict):
        detail = body.get("detail") or body.get("message") or body.get("error")
        if isinstance(detail, str) and detail:
            return detail, body
    return f"Request failed with status {response.status_code}", body


class CveApiClient:
    """
    Typed async client for /health, /records, /sync and /sync/status.

    Reads go through a shared RequestExecutor; pass an httpx transport
    (e.g. httpx.MockTransport) to run without a server.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT_SEC,
        transport: httpx.AsyncBaseTransport | None = None,
        cache: ApiCache | None = None,
        network: NetworkMonitor | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: Callable[[], float] = random.random,
    ) -> None:
        self._http = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
            headers={"Accept": "application/json"},
        )
        self.cache = cache if cache is not None else ApiCache()
        self.network = network if network is not None else NetworkMonitor()
        self.executor = RequestExecutor(self.cache, self.network, sleep=sleep, rng=rng)

    async def _send(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self._http.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            raise ApiError(f"Request to {path} timed out", error=e) from e
        except httpx.TransportError as e:
            raise ApiError(f"Cannot reach server: {e}", error=e, connectivity=True) from e
        logger.debug("%s %s -> %s", method, path, response.status_code)
        if response.is_error:
            message, body = _error_message(response)
            raise ApiError(message, status=response.status_code, error=body)
        try:
            return response.json()
        except ValueError as e:
            raise ApiError(
                f"Invalid JSON from {path}", status=response.status_code, error=e
            ) from e

    async def get_records(self, config: RequestConfig | None = None) -> list[VulnerabilityRecord]:
        async def call() -> RecordsResponse:
            return RecordsResponse.model_validate(await self._send("GET", RECORDS_PATH))

        response = await self.executor.request(create_cache_key(RECORDS_PATH), call, config)
        return response.data

    async def get_record(
        self, external_id: str, config: RequestConfig | None = None
    ) -> VulnerabilityRecord:
        path = f"{RECORDS_PATH}/{external_id}"

        async def call() -> RecordResponse:
            return RecordResponse.model_validate(await self._send("GET", path))

        response = await self.executor.request(create_cache_key(path), call, config)
        return response.data

    async def trigger_sync(
        self, background: bool = True, config: RequestConfig | None = None
    ) -> SyncResult | BackgroundSyncResponse:
        """POST /sync; the cached record list is dropped first so the next read goes live."""
        self.cache.delete(create_cache_key(RECORDS_PATH))

        async def call() -> SyncResult | BackgroundSyncResponse:
            body = await self._send("POST", SYNC_PATH, json={"background": background})
            if isinstance(body, dict) and body.get("background"):
                return BackgroundSyncResponse.model_validate(body)
            return SyncResult.model_validate(body)

        base = config or RequestConfig(enable_retry=False)
        return await self.executor.request(
            None, call, replace(base, enable_cache=False, deduplication=False)
        )

    async def get_sync_status(self, config: RequestConfig | None = None) -> SyncStatus:
        async def call() -> SyncStatus:
            return SyncStatus.model_validate(await self._send("GET", SYNC_STATUS_PATH))

        config = config or RequestConfig(cache_ttl=STATUS_CACHE_TTL_SEC)
        return await self.executor.request(create_cache_key(SYNC_STATUS_PATH), call, config)

    async def get_health(self, config: RequestConfig | None = None) -> HealthResponse:
        async def call() -> HealthResponse:
            return HealthResponse.model_validate(await self._send("GET", HEALTH_PATH))

        config = config or RequestConfig(cache_ttl=HEALTH_CACHE_TTL_SEC)
        return await self.executor.request(create_cache_key(HEALTH_PATH), call, config)

    def clear_cache(self) -> None:
        self.cache.clear()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "CveApiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

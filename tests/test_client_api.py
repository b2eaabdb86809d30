"""Tests for the client data layer: TTL cache, request deduplication, retry and the typed API client."""

import asyncio
import json
import unittest
from unittest.mock import AsyncMock

import httpx

from cvevault.client.api import (
    ApiError,
    CveApiClient,
    RequestConfig,
    RequestExecutor,
    calculate_retry_delay,
)
from cvevault.client.cache import MISSING, ApiCache, create_cache_key
from cvevault.client.network import NetworkMonitor

BASE_URL = "http://cvevault.test"


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _records_body(*ids: str) -> dict:
    return {
        "message": f"Retrieved {len(ids)} records",
        "count": len(ids),
        "data": [
            {"id": n + 1, "externalId": i, "description": "", "severity": "HIGH", "score": 7.0}
            for n, i in enumerate(ids)
        ],
    }


class TestApiCache(unittest.TestCase):
    """Entries expire after their TTL and are evicted on read."""

    def test_ttl_expiry_with_injected_clock(self) -> None:
        clock = FakeClock(100.0)
        cache = ApiCache(clock=clock)
        cache.set("/records", ["a"], ttl=5.0)

        clock.now = 104.9
        self.assertEqual(cache.get("/records"), ["a"])
        clock.now = 105.0
        self.assertIs(cache.get("/records"), MISSING)
        self.assertEqual(len(cache), 0)

    def test_cached_empty_payload_is_a_hit(self) -> None:
        cache = ApiCache(clock=FakeClock())
        cache.set("/records", [])
        self.assertEqual(cache.get("/records"), [])
        self.assertIn("/records", cache)

    def test_cache_key_sorts_params(self) -> None:
        self.assertEqual(create_cache_key("/records"), "/records")
        self.assertEqual(
            create_cache_key("/records", {"b": 1, "a": 2}),
            create_cache_key("/records", {"a": 2, "b": 1}),
        )


class TestRequestExecutor(unittest.TestCase):
    def _executor(self, online: bool = True) -> tuple[RequestExecutor, AsyncMock]:
        sleep = AsyncMock()
        executor = RequestExecutor(
            ApiCache(clock=FakeClock()),
            NetworkMonitor(is_online=online),
            sleep=sleep,
            rng=lambda: 0.5,
        )
        return executor, sleep

    def test_concurrent_calls_share_one_invocation(self) -> None:
        executor, _ = self._executor()
        calls = 0

        async def fn() -> str:
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.01)
            return "payload"

        async def scenario() -> list[str]:
            return await asyncio.gather(
                executor.request("/records", fn),
                executor.request("/records", fn),
            )

        self.assertEqual(asyncio.run(scenario()), ["payload", "payload"])
        self.assertEqual(calls, 1)
        self.assertIsNone(executor.cache.get_pending("/records"))

    def test_cache_hit_skips_call(self) -> None:
        executor, _ = self._executor()
        fn = AsyncMock(return_value="payload")

        async def scenario() -> None:
            await executor.request("/records", fn)
            await executor.request("/records", fn)

        asyncio.run(scenario())
        fn.assert_awaited_once()

    def test_retries_server_errors_with_backoff(self) -> None:
        executor, sleep = self._executor()
        fn = AsyncMock(side_effect=[ApiError("down", status=503), ApiError("down", status=500), "ok"])

        self.assertEqual(asyncio.run(executor.request("/records", fn)), "ok")
        self.assertEqual(fn.await_count, 3)
        self.assertEqual([c.args[0] for c in sleep.await_args_list], [1.5, 2.5])

    def test_does_not_retry_client_errors(self) -> None:
        executor, sleep = self._executor()
        fn = AsyncMock(side_effect=ApiError("not found", status=404))

        with self.assertRaises(ApiError) as ctx:
            asyncio.run(executor.request("/records/x", fn))
        self.assertEqual(ctx.exception.status, 404)
        fn.assert_awaited_once()
        sleep.assert_not_awaited()

    def test_gives_up_after_retry_attempts(self) -> None:
        executor, sleep = self._executor()
        fn = AsyncMock(side_effect=ApiError("down", status=502))
        config = RequestConfig(retry_attempts=2)

        with self.assertRaises(ApiError):
            asyncio.run(executor.request("/records", fn, config))
        self.assertEqual(fn.await_count, 3)
        self.assertEqual(sleep.await_count, 2)
        # A failed request leaves nothing cached or pending.
        self.assertIs(executor.cache.get("/records"), MISSING)
        self.assertIsNone(executor.cache.get_pending("/records"))

    def test_offline_fails_with_connectivity_error(self) -> None:
        executor, _ = self._executor(online=False)
        fn = AsyncMock(return_value="payload")

        with self.assertRaises(ApiError) as ctx:
            asyncio.run(executor.request("/records", fn, RequestConfig(enable_retry=False)))
        self.assertTrue(ctx.exception.is_connectivity)
        fn.assert_not_awaited()

    def test_retry_delay_is_capped(self) -> None:
        self.assertEqual(calculate_retry_delay(0, base=1.0, cap=10.0, jitter=1.0, rng=lambda: 0.0), 1.0)
        self.assertEqual(calculate_retry_delay(2, base=1.0, cap=10.0, jitter=1.0, rng=lambda: 0.5), 4.5)
        self.assertEqual(calculate_retry_delay(6, base=1.0, cap=10.0, jitter=1.0, rng=lambda: 0.9), 10.0)


class TestApiErrorClassification(unittest.TestCase):
    def test_retryable(self) -> None:
        self.assertTrue(ApiError("x").is_retryable)
        self.assertTrue(ApiError("x", status=500).is_retryable)
        self.assertFalse(ApiError("x", status=409).is_retryable)
        self.assertFalse(ApiError("x", status=404).is_connectivity)


class TestCveApiClient(unittest.TestCase):
    """CveApiClient over httpx.MockTransport."""

    def setUp(self) -> None:
        self.requests: list[httpx.Request] = []
        self.responses: dict[tuple[str, str], list] = {}

    def _handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self.responses[(request.method, request.url.path)]
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, Exception):
            raise item
        return item

    def _client(self) -> tuple[CveApiClient, AsyncMock]:
        sleep = AsyncMock()
        client = CveApiClient(
            BASE_URL,
            transport=httpx.MockTransport(self._handler),
            cache=ApiCache(clock=FakeClock()),
            sleep=sleep,
            rng=lambda: 0.0,
        )
        return client, sleep

    def _count(self, method: str, path: str) -> int:
        return sum(1 for r in self.requests if r.method == method and r.url.path == path)

    def test_records_are_cached(self) -> None:
        self.responses[("GET", "/records")] = [httpx.Response(200, json=_records_body("CVE-1", "CVE-2"))]

        async def scenario():
            async with self._client()[0] as client:
                first = await client.get_records()
                second = await client.get_records()
                return first, second

        first, second = asyncio.run(scenario())
        self.assertEqual([r.external_id for r in first], ["CVE-1", "CVE-2"])
        self.assertEqual(first, second)
        self.assertEqual(self._count("GET", "/records"), 1)

    def test_trigger_sync_invalidates_records_cache(self) -> None:
        self.responses[("GET", "/records")] = [
            httpx.Response(200, json=_records_body("CVE-1")),
            httpx.Response(200, json=_records_body("CVE-1", "CVE-2")),
        ]
        self.responses[("POST", "/sync")] = [
            httpx.Response(
                202,
                json={
                    "success": True,
                    "message": "Sync started in background.",
                    "background": True,
                    "timestamp": "2024-05-01T12:00:00+00:00",
                },
            )
        ]

        async def scenario():
            async with self._client()[0] as client:
                before = await client.get_records()
                sync = await client.trigger_sync(background=True)
                after = await client.get_records()
                return before, sync, after

        before, sync, after = asyncio.run(scenario())
        self.assertEqual(len(before), 1)
        self.assertTrue(sync.background)
        self.assertEqual(len(after), 2)
        self.assertEqual(self._count("GET", "/records"), 2)
        sync_request = next(r for r in self.requests if r.method == "POST")
        self.assertEqual(json.loads(sync_request.content), {"background": True})

    def test_http_errors_become_api_errors(self) -> None:
        self.responses[("GET", "/records/CVE-9")] = [
            httpx.Response(404, json={"detail": "Record CVE-9 not found"})
        ]

        async def scenario():
            async with self._client()[0] as client:
                await client.get_record("CVE-9")

        with self.assertRaises(ApiError) as ctx:
            asyncio.run(scenario())
        self.assertEqual(ctx.exception.status, 404)
        self.assertEqual(ctx.exception.message, "Record CVE-9 not found")
        self.assertEqual(self._count("GET", "/records/CVE-9"), 1)

    def test_server_errors_are_retried(self) -> None:
        self.responses[("GET", "/health")] = [
            httpx.Response(503, json={"detail": "unavailable"}),
            httpx.Response(
                200,
                json={
                    "message": "OK",
                    "database": {"connected": True, "totalCVEs": 4},
                    "timestamp": "2024-05-01T12:00:00+00:00",
                },
            ),
        ]
        client, sleep = self._client()

        async def scenario():
            async with client:
                return await client.get_health()

        health = asyncio.run(scenario())
        self.assertEqual(health.database.total_cves, 4)
        self.assertEqual(self._count("GET", "/health"), 2)
        sleep.assert_awaited_once_with(1.0)

    def test_unreachable_server_is_a_connectivity_error(self) -> None:
        self.responses[("GET", "/sync/status")] = [httpx.ConnectError("connection refused")]

        async def scenario():
            async with self._client()[0] as client:
                await client.get_sync_status(RequestConfig(enable_retry=False))

        with self.assertRaises(ApiError) as ctx:
            asyncio.run(scenario())
        self.assertTrue(ctx.exception.is_connectivity)
        self.assertIsNone(ctx.exception.status)

    def test_sync_status(self) -> None:
        self.responses[("GET", "/sync/status")] = [
            httpx.Response(
                200,
                json={
                    "isRunning": True,
                    "progress": {
                        "phase": "fetching",
                        "current": 10,
                        "total": 40,
                        "percentage": 25,
                        "fetched": 10,
                        "stored": 0,
                        "errorCount": 0,
                        "startedAt": "2024-05-01T12:00:00+00:00",
                        "elapsedSeconds": 2.0,
                        "etaSeconds": 6.0,
                    },
                },
            )
        ]

        async def scenario():
            async with self._client()[0] as client:
                return await client.get_sync_status()

        status = asyncio.run(scenario())
        self.assertTrue(status.is_running)
        self.assertEqual(status.progress.eta_seconds, 6.0)


if __name__ == "__main__":
    unittest.main()

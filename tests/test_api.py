"""Route tests for /health, /records and /sync with the store and sync engine overridden."""

import unittest
from unittest.mock import AsyncMock, MagicMock

from fastapi.testclient import TestClient

from cvevault.api.deps import get_store, get_sync_engine
from cvevault.core.exceptions import ConflictError, StorageError
from cvevault.main import app
from cvevault.schemas.records import VulnerabilityRecord
from cvevault.schemas.sync import RecordError, SyncResult, SyncStatus
from cvevault.services.upstream import UpstreamFetchError

TIMESTAMP = "2024-05-01T12:00:00+00:00"


def _record(external_id: str = "CVE-2024-0001") -> VulnerabilityRecord:
    return VulnerabilityRecord(
        id=1,
        external_id=external_id,
        description="Overflow",
        severity="HIGH",
        score=7.5,
        published_at="2024-01-01T00:00:00.000",
        modified_at="2024-01-02T00:00:00.000",
        raw={"cve": {"id": external_id}},
    )


class RouteTestCase(unittest.TestCase):
    """Installs mock dependencies; the app lifespan is not run (no storage, no startup sync)."""

    def setUp(self) -> None:
        self.store = MagicMock()
        self.engine = MagicMock()
        app.dependency_overrides[get_store] = lambda: self.store
        app.dependency_overrides[get_sync_engine] = lambda: self.engine
        self.client = TestClient(app)

    def tearDown(self) -> None:
        app.dependency_overrides.clear()


class TestHealthRoute(RouteTestCase):
    def test_connected(self) -> None:
        self.store.health.return_value = True
        self.store.count.return_value = 3
        resp = self.client.get("/health")
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual(body["message"], "OK")
        self.assertEqual(body["database"], {"connected": True, "totalCVEs": 3})
        self.assertIn("timestamp", body)

    def test_disconnected_omits_count(self) -> None:
        self.store.health.return_value = False
        resp = self.client.get("/health")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["database"], {"connected": False})
        self.store.count.assert_not_called()

    def test_storage_failure(self) -> None:
        self.store.health.return_value = True
        self.store.count.side_effect = StorageError("database is locked")
        self.assertEqual(self.client.get("/health").status_code, 500)


class TestRecordsRoutes(RouteTestCase):
    def test_list(self) -> None:
        self.store.get_all.return_value = [_record("CVE-2024-0002"), _record("CVE-2024-0001")]
        resp = self.client.get("/records")
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual(body["count"], 2)
        self.assertEqual(body["message"], "Retrieved 2 records")
        self.assertEqual(body["data"][0]["externalId"], "CVE-2024-0002")
        self.assertEqual(body["data"][0]["publishedAt"], "2024-01-01T00:00:00.000")

    def test_empty_store_is_not_an_error(self) -> None:
        self.store.get_all.return_value = []
        resp = self.client.get("/records")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["data"], [])

    def test_lookup(self) -> None:
        self.store.get_by_external_id.return_value = _record()
        resp = self.client.get("/records/CVE-2024-0001")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["data"]["score"], 7.5)
        self.store.get_by_external_id.assert_called_once_with("CVE-2024-0001")

    def test_lookup_missing(self) -> None:
        self.store.get_by_external_id.return_value = None
        self.assertEqual(self.client.get("/records/CVE-1999-0001").status_code, 404)


class TestSyncRoutes(RouteTestCase):
    def test_blocking_sync(self) -> None:
        self.engine.sync_blocking = AsyncMock(
            return_value=SyncResult(
                success=True,
                message="Successfully synced 2 records with 1 errors",
                fetched=3,
                stored=2,
                errors=[RecordError(external_id="CVE-3", message="constraint failed")],
                timestamp=TIMESTAMP,
            )
        )
        resp = self.client.post("/sync")
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertTrue(body["success"])
        self.assertEqual(body["fetched"], 3)
        self.assertEqual(body["stored"], 2)
        self.assertEqual(body["errors"], [{"externalId": "CVE-3", "message": "constraint failed"}])

    def test_background_sync_returns_202(self) -> None:
        resp = self.client.post("/sync", json={"background": True})
        self.assertEqual(resp.status_code, 202)
        body = resp.json()
        self.assertTrue(body["success"])
        self.assertTrue(body["background"])
        self.engine.sync_background.assert_called_once_with()

    def test_conflict(self) -> None:
        self.engine.sync_blocking = AsyncMock(side_effect=ConflictError())
        self.engine.sync_background.side_effect = ConflictError()
        self.assertEqual(self.client.post("/sync").status_code, 409)
        self.assertEqual(self.client.post("/sync", json={"background": True}).status_code, 409)

    def test_upstream_errors_map_to_statuses(self) -> None:
        cases = [
            ("timeout", 408),
            ("network", 503),
            ("upstream_4xx", 502),
            ("upstream_5xx", 502),
            ("invalid_response", 502),
        ]
        for kind, expected in cases:
            with self.subTest(kind=kind):
                self.engine.sync_blocking = AsyncMock(side_effect=UpstreamFetchError("failed", kind))
                resp = self.client.post("/sync")
                self.assertEqual(resp.status_code, expected)
                self.assertEqual(resp.json()["detail"], "failed")

    def test_storage_failure(self) -> None:
        self.engine.sync_blocking = AsyncMock(side_effect=StorageError("Database is not healthy"))
        self.assertEqual(self.client.post("/sync").status_code, 500)

    def test_status(self) -> None:
        self.engine.get_status.return_value = SyncStatus(is_running=False)
        resp = self.client.get("/sync/status")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"isRunning": False})


class TestRoot(unittest.TestCase):
    def test_root(self) -> None:
        resp = TestClient(app).get("/")
        self.assertEqual(resp.status_code, 200)
        self.assertIn("message", resp.json())


if __name__ == "__main__":
    unittest.main()

import json
import os
import tempfile
import unittest

from fastapi.testclient import TestClient

from storage_backend.app import create_app
from storage_backend.bootstrap import Environment, StorageContext
from storage_backend.config import Settings


class StorageApiTests(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        settings = Settings(
            storage_environment="client",
            object_db_dir=os.path.join(self.tmp.name, "objectdb"),
        )
        self.context = StorageContext(settings)
        self.client = TestClient(create_app(self.context))

    def tearDown(self):
        self.tmp.cleanup()

    def test_create_read_update_delete(self):
        response = self.client.post("/api/stores/products", json={"name": "Widget", "stock": 1})
        self.assertEqual(response.status_code, 201)
        created = response.json()
        record_id = created["id"]

        response = self.client.get(f"/api/stores/products/{record_id}")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), created)

        response = self.client.patch(f"/api/stores/products/{record_id}", json={"stock": 7})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["stock"], 7)

        response = self.client.delete(f"/api/stores/products/{record_id}")
        self.assertEqual(response.json(), {"deleted": True})
        response = self.client.delete(f"/api/stores/products/{record_id}")
        self.assertEqual(response.json(), {"deleted": False})

    def test_missing_records(self):
        self.assertEqual(self.client.get("/api/stores/products/999").status_code, 404)
        response = self.client.patch("/api/stores/products/999", json={"price": "1.00"})
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["type"], "NotFoundError")

    def test_validation_errors_are_bad_requests(self):
        response = self.client.post("/api/stores/products", json={"id": 3, "name": "x"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["type"], "ValidationError")
        self.assertEqual(
            self.client.post("/api/stores/bad-name", json={"name": "x"}).status_code, 400
        )
        created = self.client.post("/api/stores/products", json={"name": "x"}).json()
        response = self.client.patch(f"/api/stores/products/{created['id']}", json={})
        self.assertEqual(response.status_code, 400)

    def test_list_with_query_parameters(self):
        self.client.post("/api/stores/products", json={"name": "A", "status": "active"})
        self.client.post("/api/stores/products", json={"name": "B", "status": "archived"})
        payload = self.client.get("/api/stores/products").json()
        self.assertEqual(payload["total"], 2)
        payload = self.client.get("/api/stores/products", params={"status": "active"}).json()
        self.assertEqual([r["name"] for r in payload["records"]], ["A"])

    def test_export_and_import(self):
        self.client.post("/api/stores/products", json={"name": "A"})
        response = self.client.get("/api/stores/products/export")
        self.assertEqual(response.status_code, 200)
        self.assertIn("products.json", response.headers["content-disposition"])
        exported = response.text
        self.assertEqual(json.loads(exported)[0]["name"], "A")

        response = self.client.post("/api/stores/archive/import", content=exported)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"store": "archive", "status": "ok"})
        self.assertEqual(self.client.get("/api/stores/archive").json()["total"], 1)

        response = self.client.post("/api/stores/archive/import", content="not json")
        self.assertEqual(response.status_code, 400)

    def test_import_with_undecodable_bytes_is_a_bad_request(self):
        response = self.client.post(
            "/api/stores/products/import", content=b'[{"name":"\xff"}]'
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["type"], "ValidationError")
        self.assertEqual(self.client.get("/api/stores/products").json()["total"], 0)

    def test_query_string_matches_numeric_fields(self):
        self.client.post("/api/stores/products", json={"name": "A", "stock": 5})
        self.client.post("/api/stores/products", json={"name": "B", "stock": 50})
        payload = self.client.get("/api/stores/products", params={"stock": "5"}).json()
        self.assertEqual([r["name"] for r in payload["records"]], ["A"])

    def test_settings_written_as_plain_text_are_readable(self):
        self.client.post("/api/stores/settings", json={"key": "theme", "value": "dark"})
        response = self.client.get("/api/settings")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"theme": "dark"})

    def test_settings_round_trip(self):
        response = self.client.post("/api/settings", json={"key": "theme", "value": "dark"})
        self.assertEqual(response.status_code, 200)
        self.client.post("/api/settings", json={"key": "limits", "value": {"max": 2}})
        self.assertEqual(
            self.client.get("/api/settings").json(),
            {"theme": "dark", "limits": {"max": 2}},
        )

    def test_health_reports_provider(self):
        payload = self.client.get("/api/services/health").json()
        service = payload["services"][0]
        self.assertEqual(service["health"], "healthy")
        self.assertEqual(service["provider"], "ObjectStoreProvider")
        self.assertEqual(service["environment"], "client")


class UnreachableBackendApiTests(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        url = f"sqlite+pysqlite:///{os.path.join(self.tmp.name, 'missing', 'db.sqlite')}"
        context = StorageContext(Settings(database_url=url), Environment.SERVER)
        self.client = TestClient(create_app(context))

    def tearDown(self):
        self.tmp.cleanup()

    def test_unreachable_database_is_service_unavailable(self):
        response = self.client.get("/api/stores/products")
        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.json()["type"], "StorageConnectionError")

    def test_health_reports_unhealthy(self):
        service = self.client.get("/api/services/health").json()["services"][0]
        self.assertEqual(service["status"], "error")
        self.assertEqual(service["health"], "unhealthy")
        self.assertEqual(service["environment"], "server")


class MalformedDatabaseUrlApiTests(unittest.TestCase):
    def test_health_reports_unhealthy_for_a_bad_url(self):
        context = StorageContext(Settings(database_url="not a url"), Environment.SERVER)
        client = TestClient(create_app(context))
        response = client.get("/api/services/health")
        self.assertEqual(response.status_code, 200)
        service = response.json()["services"][0]
        self.assertEqual(service["health"], "unhealthy")
        self.assertEqual(client.get("/api/stores/products").status_code, 503)


if __name__ == "__main__":
    unittest.main()

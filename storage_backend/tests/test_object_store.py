import json
import os
import tempfile
import threading
import unittest

from storage_backend.errors import (
    NotFoundError,
    UnsupportedEnvironmentError,
    ValidationError,
)
from storage_backend.object_store import ObjectStoreProvider


class ObjectStoreProviderTests(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.provider = ObjectStoreProvider(self.tmp.name, "test-db")
        self.provider.initialize()

    def tearDown(self):
        self.tmp.cleanup()

    def test_first_use_of_a_store_creates_it(self):
        self.assertEqual(self.provider.version, 1)
        created = self.provider.create("products", {"name": "Widget", "price": "9.99"})
        self.assertEqual(self.provider.version, 2)
        self.assertEqual(self.provider.read("products", created["id"]), created)

        self.provider.list("orders")
        self.assertEqual(self.provider.version, 3)
        self.provider.list("orders")
        self.assertEqual(self.provider.version, 3)

    def test_database_file_lives_under_directory(self):
        self.assertTrue(os.path.exists(os.path.join(self.tmp.name, "test-db.sqlite3")))

    def test_read_missing_returns_none(self):
        self.assertIsNone(self.provider.read("products", 42))

    def test_update_merges_and_missing_raises(self):
        created = self.provider.create("products", {"name": "Widget", "stock": 1})
        updated = self.provider.update("products", created["id"], {"stock": 3})
        self.assertEqual(updated, {"id": created["id"], "name": "Widget", "stock": 3})
        with self.assertRaises(NotFoundError):
            self.provider.update("products", 999, {"price": "1.00"})

    def test_create_rejects_an_id(self):
        with self.assertRaises(ValidationError):
            self.provider.create("products", {"id": 1, "name": "Widget"})

    def test_delete_is_idempotent(self):
        created = self.provider.create("products", {"name": "Widget"})
        self.assertTrue(self.provider.delete("products", created["id"]))
        self.assertFalse(self.provider.delete("products", created["id"]))

    def test_list_filters_by_query(self):
        self.provider.create("products", {"name": "A", "status": "active"})
        self.provider.create("products", {"name": "B", "status": "archived"})
        self.assertEqual(len(self.provider.list("products")), 2)
        self.assertEqual(
            [r["name"] for r in self.provider.list("products", {"status": "active"})],
            ["A"],
        )

    def test_invalid_key_is_a_validation_error(self):
        with self.assertRaises(ValidationError):
            self.provider.read("products", {"nested": True})

    def test_unsafe_store_name_is_rejected(self):
        with self.assertRaises(ValidationError):
            self.provider.create("products; DROP TABLE users;--", {"name": "x"})

    def test_import_upserts_and_export_round_trips(self):
        self.provider.create("products", {"name": "Old"})
        self.provider.import_store(
            "products", '[{"id":1,"name":"A"},{"id":2,"name":"B"},{"name":"C"}]'
        )
        names = {r["id"]: r["name"] for r in self.provider.list("products")}
        self.assertEqual(names, {1: "A", 2: "B", 3: "C"})

        exported = self.provider.export_store("products")
        other = ObjectStoreProvider(self.tmp.name, "copy-db")
        other.initialize()
        other.import_store("products", exported)
        self.assertEqual(other.list("products"), json.loads(exported))

    def test_import_rejects_malformed_payload_before_writing(self):
        with self.assertRaises(ValidationError):
            self.provider.import_store("products", '[{"id": 1}, "oops"]')
        self.assertEqual(self.provider.list("products"), [])

    def test_invalid_key_type_rejects_the_whole_import(self):
        with self.assertRaises(ValidationError):
            self.provider.import_store("products", '[{"id": 1, "name": "A"}, {"id": true}]')
        self.assertEqual(self.provider.list("products"), [])

    def test_concurrent_first_use_creates_the_store_once(self):
        barrier = threading.Barrier(8)
        created, errors = [], []

        def worker(index):
            barrier.wait()
            try:
                created.append(self.provider.create("products", {"n": index}))
            except Exception as exc:
                errors.append(exc)

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(errors, [])
        self.assertEqual(len({record["id"] for record in created}), 8)
        self.assertEqual(len(self.provider.list("products")), 8)
        self.assertEqual(self.provider.version, 2)

    def test_two_providers_creating_stores_concurrently(self):
        other = ObjectStoreProvider(self.tmp.name, "test-db")
        other.initialize()
        barrier = threading.Barrier(2)
        errors = []

        def worker(provider, store):
            barrier.wait()
            try:
                for index in range(3):
                    provider.create(store, {"n": index})
            except Exception as exc:
                errors.append(exc)

        threads = [
            threading.Thread(target=worker, args=(self.provider, "alpha")),
            threading.Thread(target=worker, args=(other, "beta")),
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(errors, [])
        self.assertEqual(len(self.provider.list("beta")), 3)
        self.assertEqual(len(other.list("alpha")), 3)
        self.assertEqual(self.provider.version, 3)
        self.assertEqual(other.version, 3)

    def test_store_created_elsewhere_is_picked_up(self):
        other = ObjectStoreProvider(self.tmp.name, "test-db")
        other.initialize()
        self.provider.create("products", {"name": "Widget"})
        # The upgrade closed the other provider's connection; it reopens.
        self.assertEqual(len(other.list("products")), 1)
        other.create("orders", {"total": 5})
        self.assertEqual(len(self.provider.list("orders")), 1)
        self.assertEqual(self.provider.version, other.version)


class ObjectStoreProviderEnvironmentTests(unittest.TestCase):
    def test_unavailable_engine_is_an_unsupported_environment(self):
        provider = ObjectStoreProvider(None)
        with self.assertRaises(UnsupportedEnvironmentError):
            provider.initialize()


if __name__ == "__main__":
    unittest.main()

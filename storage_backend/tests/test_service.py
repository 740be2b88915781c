import io
import json
import os
import tempfile
import unittest
from pathlib import Path

from storage_backend.errors import UnsupportedEnvironmentError, ValidationError
from storage_backend.files import (
    ClientFileTransfer,
    Download,
    ServerFileTransfer,
    validate_file_name,
)
from storage_backend.flat_store import FlatStoreProvider
from storage_backend.keyvalue import InMemoryKeyValueStore
from storage_backend.service import StorageService


class FileNameTests(unittest.TestCase):
    def test_rejects_paths_and_empty_names(self):
        for name in ("", ".", "..", "../etc/passwd", "a/b.json", "a\\b.json"):
            with self.assertRaises(ValidationError):
                validate_file_name(name)
        self.assertEqual(validate_file_name("products.json"), "products.json")


class ServerStorageServiceTests(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.exports = os.path.join(self.tmp.name, "exports")
        self.service = StorageService(
            FlatStoreProvider(InMemoryKeyValueStore()), ServerFileTransfer(self.exports)
        )
        self.service.initialize()

    def tearDown(self):
        self.tmp.cleanup()

    def test_export_to_file_writes_under_exports_dir(self):
        created = self.service.create("products", {"name": "Widget"})
        path = self.service.export_to_file("products", "products.json")
        self.assertEqual(Path(path).parent, Path(self.exports).resolve())
        self.assertEqual(json.loads(Path(path).read_text(encoding="utf-8")), [created])

    def test_import_from_file_reads_path(self):
        source = Path(self.tmp.name) / "in.json"
        source.write_text(json.dumps([{"id": "x", "name": "A"}]), encoding="utf-8")
        self.service.import_from_file("products", str(source))
        self.assertEqual(self.service.read("products", "x")["name"], "A")

    def test_import_from_missing_file(self):
        with self.assertRaises(FileNotFoundError):
            self.service.import_from_file("products", os.path.join(self.tmp.name, "nope.json"))

    def test_uploaded_file_object_is_unsupported_on_server(self):
        with self.assertRaises(UnsupportedEnvironmentError):
            self.service.import_from_file("products", io.StringIO("[]"))

    def test_bad_export_name_fails_before_exporting(self):
        with self.assertRaises(ValidationError):
            self.service.export_to_file("products", "../escape.json")
        self.assertFalse(os.path.exists(self.exports))


class ClientStorageServiceTests(unittest.TestCase):
    def setUp(self):
        self.delivered = []
        self.service = StorageService(
            FlatStoreProvider(InMemoryKeyValueStore()),
            ClientFileTransfer(self.delivered.append),
        )
        self.service.initialize()

    def test_export_is_delivered_as_download(self):
        self.service.create("products", {"name": "Widget"})
        download = self.service.export_to_file("products", "products.json")
        self.assertIsInstance(download, Download)
        self.assertEqual(self.delivered, [download])
        self.assertEqual(download.media_type, "application/json")
        self.assertEqual(json.loads(download.content)[0]["name"], "Widget")

    def test_import_from_uploaded_file(self):
        upload = io.BytesIO(json.dumps([{"id": "u1", "name": "Up"}]).encode("utf-8"))
        self.service.import_from_file("products", upload)
        self.assertEqual(self.service.read("products", "u1")["name"], "Up")

    def test_import_from_json_string(self):
        self.service.import_from_file("products", '[{"id": "s1", "name": "S"}]')
        self.assertEqual(self.service.read("products", "s1")["name"], "S")

    def test_server_path_is_unsupported_on_client(self):
        with self.assertRaises(UnsupportedEnvironmentError):
            self.service.import_from_file("products", "/tmp/products.json")
        with self.assertRaises(UnsupportedEnvironmentError):
            self.service.import_from_file("products", Path("products.json"))

    def test_unknown_source_type(self):
        with self.assertRaises(ValidationError):
            self.service.import_from_file("products", 12)


if __name__ == "__main__":
    unittest.main()

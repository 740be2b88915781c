import unittest

from storage_backend.errors import ValidationError
from storage_backend.files import ClientFileTransfer
from storage_backend.flat_store import FlatStoreProvider
from storage_backend.keyvalue import InMemoryKeyValueStore
from storage_backend.service import StorageService
from storage_backend.settings_service import SettingsService


class SettingsServiceTests(unittest.TestCase):
    def setUp(self):
        storage = StorageService(FlatStoreProvider(InMemoryKeyValueStore()), ClientFileTransfer())
        storage.initialize()
        self.storage = storage
        self.settings = SettingsService(storage)

    def test_missing_setting_is_none(self):
        self.assertIsNone(self.settings.get_setting("theme"))

    def test_set_and_get_json_values(self):
        self.settings.set_setting("theme", "dark")
        self.settings.set_setting("limits", {"max": 3})
        self.assertEqual(self.settings.get_setting("theme"), "dark")
        self.assertEqual(self.settings.get_setting("limits"), {"max": 3})
        self.assertEqual(
            self.settings.get_all_settings(), {"theme": "dark", "limits": {"max": 3}}
        )

    def test_setting_twice_updates_in_place(self):
        self.settings.set_setting("theme", "dark")
        self.settings.set_setting("theme", "light")
        self.assertEqual(len(self.storage.list("settings")), 1)
        self.assertEqual(self.settings.get_setting("theme"), "light")

    def test_plain_text_value_is_returned_as_is(self):
        self.storage.create("settings", {"key": "theme", "value": "dark"})
        self.assertEqual(self.settings.get_setting("theme"), "dark")
        self.assertEqual(self.settings.get_all_settings(), {"theme": "dark"})

    def test_empty_key_is_rejected(self):
        with self.assertRaises(ValidationError):
            self.settings.set_setting("  ", 1)
        with self.assertRaises(ValidationError):
            self.settings.get_setting("")


if __name__ == "__main__":
    unittest.main()

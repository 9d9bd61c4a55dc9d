import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from rotaexpress.config import load_settings
from rotaexpress.storage import JsonFileStorage, MemoryStorage


class TestJsonFileStorage(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)

    def test_get_set_remove(self):
        storage = JsonFileStorage(Path(self.tmp.name), "courier_1")
        self.assertIsNone(storage.get("rota_stops_v13"))
        storage.set("rota_stops_v13", b"[]")
        self.assertEqual(storage.get("rota_stops_v13"), b"[]")
        self.assertTrue((Path(self.tmp.name) / "courier_1" / "rota_stops_v13.json").exists())
        storage.remove("rota_stops_v13")
        storage.remove("rota_stops_v13")
        self.assertIsNone(storage.get("rota_stops_v13"))

    def test_namespaces_are_isolated(self):
        a = JsonFileStorage(Path(self.tmp.name), "a")
        b = JsonFileStorage(Path(self.tmp.name), "b")
        a.set("k", b"1")
        self.assertIsNone(b.get("k"))

    def test_rejects_path_like_keys(self):
        storage = JsonFileStorage(Path(self.tmp.name), "a")
        with self.assertRaises(ValueError):
            storage.set("../escape", b"x")
        with self.assertRaises(ValueError):
            JsonFileStorage(Path(self.tmp.name), "../up")


class TestMemoryStorage(unittest.TestCase):
    def test_basic(self):
        storage = MemoryStorage()
        storage.set("k", b"v")
        self.assertEqual(storage.keys(), ["k"])
        storage.remove("k")
        storage.remove("k")
        self.assertIsNone(storage.get("k"))


class TestSettings(unittest.TestCase):
    def setUp(self):
        patcher = mock.patch.dict("os.environ", {}, clear=True)
        patcher.start()
        self.addCleanup(patcher.stop)

    def test_defaults_without_key(self):
        settings = load_settings({})
        self.assertEqual(settings.geocoder, "nominatim")
        self.assertFalse(settings.has_credentials)

    def test_secrets_take_precedence_over_environment(self):
        os.environ["GEMINI_API_KEY"] = "env-key"
        os.environ["ROTA_HTTP_TIMEOUT"] = "12"
        settings = load_settings({"GEMINI_API_KEY": "secret-key", "ROTA_DATA_DIR": "/tmp/rota"})
        self.assertEqual(settings.gemini_api_key, "secret-key")
        self.assertEqual(settings.geocoder, "gemini")
        self.assertEqual(settings.http_timeout, 12.0)
        self.assertEqual(settings.data_dir, Path("/tmp/rota"))

    def test_api_key_alias_and_validation(self):
        self.assertTrue(load_settings({"API_KEY": "k"}).has_credentials)
        with self.assertRaises(ValueError):
            load_settings({"ROTA_GEOCODER": "bing"})
        with self.assertRaises(ValueError):
            load_settings({"ROTA_HTTP_TIMEOUT": "0"})


if __name__ == "__main__":
    unittest.main()

import json
import os
import shutil
import tempfile
import unittest

from custodyseal.config import (
    DEFAULT_ARTIFACT_ANCHOR,
    CachedConfig,
    Settings,
    read_anchor_file,
    validate_config,
)


class TestSettings(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def test_defaults(self):
        settings = Settings.from_env({})
        self.assertEqual(settings.artifact_anchor, DEFAULT_ARTIFACT_ANCHOR)
        self.assertEqual(settings.vault_backend, "memory")
        self.assertIsNone(settings.artifact_path)
        self.assertTrue(settings.log_json)
        self.assertFalse(settings.is_production())

    def test_from_env(self):
        settings = Settings.from_env({
            "CUSTODYSEAL_ENV": "prod",
            "CUSTODYSEAL_ARTIFACT_ANCHOR": "ab" * 32,
            "CUSTODYSEAL_VERIFY_TIMEOUT": "5",
            "CUSTODYSEAL_VAULT_BACKEND": "sqlite",
            "LOG_JSON": "false",
        })
        self.assertTrue(settings.is_production())
        self.assertEqual(settings.artifact_anchor, "ab" * 32)
        self.assertEqual(settings.verify_timeout_seconds, 5.0)
        self.assertEqual(settings.vault_backend, "sqlite")
        self.assertFalse(settings.log_json)

    def test_anchor_file_overrides_anchor(self):
        path = os.path.join(self.tmpdir, "release.sha256")
        with open(path, "w", encoding="utf-8") as f:
            f.write("# release anchor\n" + "cd" * 32 + "  app-release.apk\n")
        self.assertEqual(read_anchor_file(path), "cd" * 32)
        settings = Settings.from_env({
            "CUSTODYSEAL_ARTIFACT_ANCHOR": "ab" * 32,
            "CUSTODYSEAL_ANCHOR_FILE": path,
        })
        self.assertEqual(settings.artifact_anchor, "cd" * 32)

    def test_empty_anchor_file(self):
        path = os.path.join(self.tmpdir, "empty.sha256")
        open(path, "w").close()
        with self.assertRaises(ValueError):
            read_anchor_file(path)

    def test_invalid_values(self):
        with self.assertRaises(ValueError):
            Settings(vault_backend="postgres")
        with self.assertRaises(ValueError):
            Settings(verify_timeout_seconds=0)

    def test_master_key_hidden_from_repr(self):
        self.assertNotIn("secret-key", repr(Settings(master_key_b64="secret-key")))

    def test_validate_config(self):
        settings = Settings(
            artifact_path=os.path.join(self.tmpdir, "missing.apk"),
            vault_backend="sqlite",
            vault_path=os.path.join(self.tmpdir, "vault.db"),
        )
        self.assertEqual(validate_config(settings), {"artifact": False, "vault_dir": True})


class TestCachedConfig(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        self.path = os.path.join(self.tmpdir, "table.json")
        self._write({"version": 1})

    def tearDown(self):
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def _write(self, data):
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(data, f)

    def test_cached_within_ttl(self):
        cache = CachedConfig(ttl_seconds=60)
        self.assertEqual(cache.get_json(self.path), {"version": 1})
        self._write({"version": 2})
        self.assertEqual(cache.get_json(self.path), {"version": 1})
        self.assertEqual(cache.get_json(self.path, force_reload=True), {"version": 2})

    def test_invalidate(self):
        cache = CachedConfig(ttl_seconds=60)
        cache.get_json(self.path)
        self._write({"version": 3})
        cache.invalidate(self.path)
        self.assertEqual(cache.get_json(self.path), {"version": 3})

    def test_expired_entry_reloads(self):
        cache = CachedConfig(ttl_seconds=-1)
        cache.get_json(self.path)
        self._write({"version": 4})
        self.assertEqual(cache.get_json(self.path), {"version": 4})


if __name__ == "__main__":
    unittest.main()

import os
import sys
import tempfile
import unittest

# Ensure project src/ is on sys.path for imports
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
src_path = os.path.join(ROOT, "src")
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from db import database as db_database
from db.store import (
    ACCESS_TOKEN_KEY,
    InMemoryStore,
    KeyValueStore,
    open_store,
    scoped_key,
)


class KeyValueStoreTestCase(unittest.TestCase):
    def setUp(self):
        # Point the store at a temporary file
        self.temp_dir = tempfile.TemporaryDirectory()
        self.db_path = os.path.join(self.temp_dir.name, "nested", "store.sqlite")
        self.store = KeyValueStore(self.db_path)

    def tearDown(self):
        self.temp_dir.cleanup()

    # ---------- basic contract ----------

    def test_absent_key_is_none_on_first_run(self):
        self.assertIsNone(self.store.get("missing"))
        self.assertEqual(self.store.keys(), [])
        # parent directory created on first use
        self.assertTrue(os.path.isfile(self.db_path))

    def test_set_get_overwrite(self):
        self.assertTrue(self.store.set("k", "v1"))
        self.assertEqual(self.store.get("k"), "v1")
        self.assertTrue(self.store.set("k", "v2"))
        self.assertEqual(self.store.get("k"), "v2")
        self.assertEqual(self.store.keys(), ["k"])

    def test_remove_is_idempotent(self):
        self.store.set("k", "v")
        self.store.remove("k")
        self.assertIsNone(self.store.get("k"))
        # removing again is not an error
        self.store.remove("k")
        self.store.remove("never-there")

    def test_survives_reopen(self):
        self.store.set_json(ACCESS_TOKEN_KEY, "abc")
        reopened = KeyValueStore(self.db_path)
        self.assertEqual(reopened.get_json(ACCESS_TOKEN_KEY), "abc")

    def test_clear(self):
        self.store.set("a", "1")
        self.store.set("b", "2")
        self.store.clear()
        self.assertEqual(self.store.keys(), [])

    # ---------- JSON helpers ----------

    def test_json_roundtrip_and_malformed(self):
        self.assertTrue(self.store.set_json("cart.guest", [{"id": 1}]))
        self.assertEqual(self.store.get_json("cart.guest"), [{"id": 1}])

        self.store.set("cart.guest", "{not json")
        self.assertEqual(self.store.get_json("cart.guest", []), [])
        self.assertIsNone(self.store.get_json("absent"))

    def test_unencodable_value_is_not_written(self):
        self.assertFalse(self.store.set_json("bad", {"x": object()}))
        self.assertIsNone(self.store.get("bad"))

    # ---------- failure semantics ----------

    def test_unusable_path_behaves_as_empty(self):
        # a directory cannot be opened as a database file
        broken = KeyValueStore(self.temp_dir.name)
        self.assertFalse(broken.set("k", "v"))
        self.assertIsNone(broken.get("k"))
        broken.remove("k")
        self.assertEqual(broken.keys(), [])
        broken.clear()


class InMemoryStoreTestCase(unittest.TestCase):
    def test_same_contract(self):
        store = InMemoryStore({"seed": "1"})
        self.assertEqual(store.get("seed"), "1")
        self.assertTrue(store.set_json("x", {"a": 1}))
        self.assertEqual(store.get_json("x"), {"a": 1})
        store.remove("x")
        store.remove("x")
        self.assertEqual(store.keys(), ["seed"])

    def test_open_store(self):
        self.assertIsInstance(open_store(":memory:"), InMemoryStore)
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "s.sqlite")
            store = open_store(path)
            self.assertIsInstance(store, KeyValueStore)
            self.assertEqual(store.path, path)

    def test_default_path_follows_module_setting(self):
        orig = db_database.DB_PATH
        try:
            db_database.DB_PATH = ":memory:"
            self.assertIsInstance(open_store(), InMemoryStore)
        finally:
            db_database.DB_PATH = orig

    def test_scoped_key(self):
        self.assertEqual(scoped_key("cart", "42"), "cart.42")


if __name__ == "__main__":
    unittest.main()

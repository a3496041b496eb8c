import sqlite3
import unittest

from fakes import memory_store

from titanbot.core.errors import DatabaseError
from titanbot.db import SqliteKeyValueStore


class SqliteKeyValueStoreTests(unittest.TestCase):
    def test_get_missing_key_returns_default(self) -> None:
        store = memory_store()
        self.assertIsNone(store.get("economy:1:2"))
        self.assertEqual(store.get("economy:1:2", {"wallet": 0}), {"wallet": 0})

    def test_set_overwrites_and_delete_reports_existence(self) -> None:
        store = memory_store()
        store.set("level:1:2", {"level": 1})
        store.set("level:1:2", {"level": 2, "xp": 5})
        self.assertEqual(store.get("level:1:2"), {"level": 2, "xp": 5})
        self.assertTrue(store.delete("level:1:2"))
        self.assertFalse(store.delete("level:1:2"))
        self.assertIsNone(store.get("level:1:2"))

    def test_invalid_json_raises_database_error_with_context(self) -> None:
        conn = sqlite3.connect(":memory:")
        conn.execute("CREATE TABLE app_state (key TEXT PRIMARY KEY, value TEXT NOT NULL)")
        conn.execute("INSERT INTO app_state (key, value) VALUES (?, ?)", ("broken", "{not json"))
        store = SqliteKeyValueStore(lambda: conn)

        with self.assertRaises(DatabaseError) as caught:
            store.get("broken")
        self.assertEqual(caught.exception.context, {"key": "broken", "operation": "get"})

    def test_missing_table_is_wrapped(self) -> None:
        conn = sqlite3.connect(":memory:")
        store = SqliteKeyValueStore(lambda: conn)

        with self.assertRaises(DatabaseError) as caught:
            store.set("guild_config:1", {})
        self.assertEqual(caught.exception.context["operation"], "set")


if __name__ == "__main__":
    unittest.main()

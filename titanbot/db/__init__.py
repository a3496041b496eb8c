from titanbot.db.database import get_connection, init_db
from titanbot.db.store import KeyValueStore, SqliteKeyValueStore

__all__ = [
    "KeyValueStore",
    "SqliteKeyValueStore",
    "get_connection",
    "init_db",
]

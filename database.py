import sqlite3

from exceptions import StorageWriteError
from local_storage import LocalStorage

DB_NAME = "hms_storage.db"


def get_connection(db_name=DB_NAME):
    conn = sqlite3.connect(db_name, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    return conn


def init_db(db_name=DB_NAME):
    conn = get_connection(db_name)
    try:
        cursor = conn.cursor()

        # One row per storage key; value is the raw JSON string
        cursor.execute("""
        CREATE TABLE IF NOT EXISTS storage (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL
        )
        """)

        conn.commit()
    finally:
        conn.close()


class SqliteStorage(LocalStorage):
    """Key/value storage in a single SQLite table."""

    def __init__(self, db_name=DB_NAME, quota_bytes=None):
        super().__init__(quota_bytes=quota_bytes)
        self.db_name = db_name
        init_db(db_name)

    def _load(self):
        conn = get_connection(self.db_name)
        try:
            rows = conn.execute("SELECT key, value FROM storage").fetchall()
        finally:
            conn.close()
        return {row['key']: row['value'] for row in rows}

    def get_item(self, key):
        conn = get_connection(self.db_name)
        try:
            row = conn.execute("SELECT value FROM storage WHERE key = ?", (key,)).fetchone()
        finally:
            conn.close()
        return row['value'] if row else None

    def _store(self, key, value):
        conn = get_connection(self.db_name)
        try:
            conn.execute(
                "INSERT INTO storage (key, value) VALUES (?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                (key, value),
            )
            conn.commit()
        except sqlite3.Error as e:
            raise StorageWriteError(key, e) from e
        finally:
            conn.close()

    def _delete(self, key):
        conn = get_connection(self.db_name)
        try:
            conn.execute("DELETE FROM storage WHERE key = ?", (key,))
            conn.commit()
        except sqlite3.Error as e:
            raise StorageWriteError(key, e) from e
        finally:
            conn.close()

import sqlite3

from result import Err, Ok, Result

from pitstop.storage.base import SlotStore
from pitstop.util.logger import setup_logger

logger = setup_logger("pitstop", is_stream=True, is_file=True)


class SlotStoreToSQLite(SlotStore):
    """SQLite3 バックエンド実装.

    - slots テーブル: key -> value (TEXT)
    """

    def __init__(self, data_path: str | None = None, *, max_bytes: int | None = None) -> None:
        super().__init__(data_path, max_bytes=max_bytes)
        self._conn: sqlite3.Connection | None = None

    # ---- low-level helpers ---------------------------------------------

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(self.data_path)
            self._init_schema(self._conn)
        return self._conn

    @staticmethod
    def _init_schema(c: sqlite3.Connection) -> None:
        """テーブルがなければ作成する."""
        c.execute(
            """
            CREATE TABLE IF NOT EXISTS slots (
                key   TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
            """,
        )
        c.commit()

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    # ---- SlotStore API ---------------------------------------------------

    def read(self, key: str) -> Result[str | None, str]:
        try:
            row = self.conn.execute("SELECT value FROM slots WHERE key = ?", (key,)).fetchone()
        except sqlite3.Error as e:
            _msg = f"Failed to read slot {key}: {e}"
            logger.warning(_msg)
            return Err(_msg)
        return Ok(None if row is None else str(row[0]))

    def _write(self, key: str, value: str) -> Result[None, str]:
        try:
            with self.conn:
                self.conn.execute(
                    "INSERT INTO slots (key, value) VALUES (?, ?) ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                    (key, value),
                )
        except sqlite3.Error as e:
            _msg = f"Failed to write slot {key}: {e}"
            logger.warning(_msg)
            return Err(_msg)
        return Ok(None)

    def remove(self, key: str) -> Result[None, str]:
        try:
            with self.conn:
                self.conn.execute("DELETE FROM slots WHERE key = ?", (key,))
        except sqlite3.Error as e:
            _msg = f"Failed to remove slot {key}: {e}"
            logger.warning(_msg)
            return Err(_msg)
        return Ok(None)

    def keys(self) -> Result[list[str], str]:
        try:
            rows = self.conn.execute("SELECT key FROM slots ORDER BY key").fetchall()
        except sqlite3.Error as e:
            return Err(f"Failed to list slots: {e}")
        return Ok([str(r[0]) for r in rows])

    def _used_bytes(self, *, excluding: str) -> Result[int, str]:
        try:
            row = self.conn.execute(
                "SELECT COALESCE(SUM(LENGTH(CAST(key AS BLOB)) + LENGTH(CAST(value AS BLOB))), 0) FROM slots WHERE key != ?",
                (excluding,),
            ).fetchone()
        except sqlite3.Error as e:
            return Err(f"Failed to measure storage usage: {e}")
        return Ok(int(row[0]))

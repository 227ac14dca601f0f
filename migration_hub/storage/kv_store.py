from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Dict, Iterable, Optional

from migration_hub.errors import StorageError


class KeyValueStore:
  """Minimal string key/value space the session layer persists into."""

  def get(self, key: str) -> Optional[str]:
    raise NotImplementedError

  def set(self, key: str, value: str) -> None:
    raise NotImplementedError

  def delete(self, key: str) -> None:
    raise NotImplementedError

  def get_many(self, keys: Iterable[str]) -> Dict[str, str]:
    values: Dict[str, str] = {}
    for key in keys:
      value = self.get(key)
      if value is not None:
        values[key] = value
    return values


class MemoryKeyValueStore(KeyValueStore):
  def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
    self._values: Dict[str, str] = dict(initial or {})

  def get(self, key: str) -> Optional[str]:
    return self._values.get(key)

  def set(self, key: str, value: str) -> None:
    self._values[key] = value

  def delete(self, key: str) -> None:
    self._values.pop(key, None)


class SQLiteKeyValueStore(KeyValueStore):
  """SQLite-backed key/value space surviving process restarts."""

  def __init__(self, db_path: Path) -> None:
    self.db_path = Path(db_path)
    try:
      self.db_path.parent.mkdir(parents=True, exist_ok=True)
      self._init_schema()
    except (OSError, sqlite3.Error) as exc:
      raise StorageError(f'Cannot open key/value store at {self.db_path}: {exc}') from exc

  def _connect(self) -> sqlite3.Connection:
    connection = sqlite3.connect(self.db_path)
    connection.row_factory = sqlite3.Row
    return connection

  def _init_schema(self) -> None:
    with self._connect() as conn:
      conn.execute(
        """
        CREATE TABLE IF NOT EXISTS kv_entries (
          key TEXT PRIMARY KEY,
          value TEXT NOT NULL
        );
        """
      )
      conn.commit()

  def get(self, key: str) -> Optional[str]:
    try:
      with self._connect() as conn:
        row = conn.execute('SELECT value FROM kv_entries WHERE key = ?', (key,)).fetchone()
    except sqlite3.Error as exc:
      raise StorageError(f'Read of {key!r} failed: {exc}') from exc
    return row['value'] if row else None

  def set(self, key: str, value: str) -> None:
    try:
      with self._connect() as conn:
        conn.execute(
          """
          INSERT INTO kv_entries (key, value) VALUES (?, ?)
          ON CONFLICT(key) DO UPDATE SET value=excluded.value
          """,
          (key, value)
        )
        conn.commit()
    except sqlite3.Error as exc:
      raise StorageError(f'Write of {key!r} failed: {exc}') from exc

  def delete(self, key: str) -> None:
    try:
      with self._connect() as conn:
        conn.execute('DELETE FROM kv_entries WHERE key = ?', (key,))
        conn.commit()
    except sqlite3.Error as exc:
      raise StorageError(f'Delete of {key!r} failed: {exc}') from exc

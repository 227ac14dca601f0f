from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

from migration_hub.errors import StorageError
from migration_hub.session.models import (
  Entity,
  PlatformIdentity,
  SelectionLevel,
  SessionSnapshot
)
from migration_hub.storage.kv_store import KeyValueStore, MemoryKeyValueStore, SQLiteKeyValueStore

logger = logging.getLogger(__name__)

KEY_AUTHENTICATED = 'isAuthenticated'
KEY_PRINCIPAL = 'userId'
KEY_PLATFORM = 'platformIdentity'
KEY_TOKEN = 'authToken'

SELECTION_KEYS = {
  SelectionLevel.PROJECT: 'selectedProject',
  SelectionLevel.WORKBOOK: 'selectedWorkbook',
  SelectionLevel.DASHBOARD: 'selectedDashboard'
}

OWNED_KEYS = (KEY_AUTHENTICATED, KEY_PRINCIPAL, KEY_PLATFORM, KEY_TOKEN) + tuple(SELECTION_KEYS.values())


class SessionContextStore:
  """Who is logged in, to which platform, and what is currently selected.

  Every value is JSON-encoded under a fixed key. Reads come from an in-memory
  mirror loaded at construction; writes update the mirror first and then the
  persistent store. When the persistent store fails the instance swaps it for
  a memory store holding the mirror, records a warning and keeps going.
  Writes are not atomic: fields written before a failure stay written.
  """

  def __init__(self, backend: KeyValueStore, event_logger=None) -> None:
    self._backend = backend
    self._event_logger = event_logger
    self._mirror: Dict[str, Any] = {}
    self.degraded = False
    self.last_storage_error: Optional[StorageError] = None
    self._load()

  def _load(self) -> None:
    try:
      raw_values = self._backend.get_many(OWNED_KEYS)
    except StorageError as exc:
      self._degrade(exc)
      return
    for key, raw in raw_values.items():
      try:
        self._mirror[key] = json.loads(raw)
      except json.JSONDecodeError:
        logger.warning('Ignoring undecodable session value under %s', key)

  def _degrade(self, exc: StorageError) -> None:
    self.last_storage_error = exc
    if self.degraded:
      return
    self.degraded = True
    logger.warning('Session storage unavailable, continuing in memory only: %s', exc)
    if self._event_logger:
      self._event_logger.log_warning('session_storage_degraded', {'error': str(exc)})
    self._backend = MemoryKeyValueStore(
      {key: json.dumps(value) for key, value in self._mirror.items()}
    )

  def _write(self, key: str, value: Any) -> None:
    self._mirror[key] = value
    try:
      self._backend.set(key, json.dumps(value))
    except StorageError as exc:
      self._degrade(exc)
      self._backend.set(key, json.dumps(value))

  def _remove(self, key: str) -> None:
    self._mirror.pop(key, None)
    try:
      self._backend.delete(key)
    except StorageError as exc:
      self._degrade(exc)
      self._backend.delete(key)

  def set_session(self, platform: PlatformIdentity, principal_id: str, auth_token: str) -> None:
    platform = PlatformIdentity.parse(platform)
    if platform is PlatformIdentity.NONE:
      raise ValueError('An authenticated session needs a platform identity.')
    self._write(KEY_PLATFORM, platform.value)
    self._write(KEY_PRINCIPAL, principal_id)
    self._write(KEY_TOKEN, auth_token)
    self._write(KEY_AUTHENTICATED, True)
    for key in SELECTION_KEYS.values():
      self._remove(key)
    logger.info('Session started for %s on %s', principal_id, platform.value)

  def clear_session(self) -> None:
    for key in OWNED_KEYS:
      self._remove(key)

  def get_session(self) -> Optional[SessionSnapshot]:
    if self._mirror.get(KEY_AUTHENTICATED) is not True:
      return None
    platform = PlatformIdentity.parse(self._mirror.get(KEY_PLATFORM))
    if platform is PlatformIdentity.NONE:
      return None
    return SessionSnapshot(
      platform=platform,
      principal_id=str(self._mirror.get(KEY_PRINCIPAL) or ''),
      auth_token=str(self._mirror.get(KEY_TOKEN) or '')
    )

  def set_selection(self, level: SelectionLevel, entity: Entity) -> None:
    level = SelectionLevel(level)
    self._write(SELECTION_KEYS[level], entity.to_dict())
    for deeper in level.deeper:
      self._remove(SELECTION_KEYS[deeper])

  def get_selection(self, level: SelectionLevel) -> Optional[Entity]:
    payload = self._mirror.get(SELECTION_KEYS[SelectionLevel(level)])
    if not isinstance(payload, dict) or 'id' not in payload:
      return None
    return Entity.from_dict(payload)


def open_session_store(db_path, event_logger=None) -> SessionContextStore:
  """Open the SQLite-backed store, falling back to memory when the file is unusable."""
  try:
    backend: KeyValueStore = SQLiteKeyValueStore(db_path)
  except StorageError as exc:
    logger.warning('Session database unavailable, using memory only: %s', exc)
    if event_logger:
      event_logger.log_warning('session_storage_degraded', {'error': str(exc)})
    store = SessionContextStore(MemoryKeyValueStore(), event_logger=event_logger)
    store.degraded = True
    store.last_storage_error = exc
    return store
  return SessionContextStore(backend, event_logger=event_logger)

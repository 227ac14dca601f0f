"""Tests for the session context store."""

import pytest

from migration_hub.errors import StorageError
from migration_hub.session.context_store import SessionContextStore, open_session_store
from migration_hub.session.models import Entity, PlatformIdentity, SelectionLevel
from migration_hub.storage.kv_store import KeyValueStore, MemoryKeyValueStore, SQLiteKeyValueStore


class FailingStore(KeyValueStore):
  """Accepts reads but rejects every write, like a full or disabled storage."""

  def __init__(self) -> None:
    self.attempts = 0

  def get(self, key):
    return None

  def set(self, key, value):
    self.attempts += 1
    raise StorageError('quota exceeded')

  def delete(self, key):
    raise StorageError('quota exceeded')


def _project():
  return Entity(id='p1', name='Finance')


def test_get_session_is_none_before_login(session_store):
  assert session_store.get_session() is None


def test_set_session_round_trip(session_store):
  session_store.set_session(PlatformIdentity.TABLEAU, 'analyst', 'tok-123')

  snapshot = session_store.get_session()
  assert snapshot is not None
  assert snapshot.platform is PlatformIdentity.TABLEAU
  assert snapshot.principal_id == 'analyst'
  assert snapshot.auth_token == 'tok-123'
  assert snapshot.authenticated is True


def test_set_session_accepts_platform_string(session_store):
  session_store.set_session('microstrategy', 'ops', 'tok')
  assert session_store.get_session().platform is PlatformIdentity.MICROSTRATEGY


def test_set_session_rejects_missing_platform(session_store):
  with pytest.raises(ValueError):
    session_store.set_session(PlatformIdentity.NONE, 'analyst', 'tok')
  assert session_store.get_session() is None


def test_clear_session_then_get_session_returns_none(tableau_session):
  tableau_session.set_selection(SelectionLevel.PROJECT, _project())

  tableau_session.clear_session()

  assert tableau_session.get_session() is None
  assert tableau_session.get_selection(SelectionLevel.PROJECT) is None


def test_clear_session_is_idempotent(session_store):
  session_store.clear_session()
  session_store.clear_session()
  assert session_store.get_session() is None


def test_setting_project_clears_workbook_and_dashboard(tableau_session):
  tableau_session.set_selection(SelectionLevel.PROJECT, _project())
  tableau_session.set_selection(SelectionLevel.WORKBOOK, Entity(id='w1', name='Sales', parent_ids={'project': 'p1'}))
  tableau_session.set_selection(SelectionLevel.DASHBOARD, Entity(id='d1', name='Overview'))

  tableau_session.set_selection(SelectionLevel.PROJECT, Entity(id='p2', name='Ops'))

  assert tableau_session.get_selection(SelectionLevel.PROJECT).id == 'p2'
  assert tableau_session.get_selection(SelectionLevel.WORKBOOK) is None
  assert tableau_session.get_selection(SelectionLevel.DASHBOARD) is None


def test_setting_workbook_clears_only_dashboard(tableau_session):
  tableau_session.set_selection(SelectionLevel.PROJECT, _project())
  tableau_session.set_selection(SelectionLevel.WORKBOOK, Entity(id='w1', name='Sales'))
  tableau_session.set_selection(SelectionLevel.DASHBOARD, Entity(id='d1', name='Overview'))

  tableau_session.set_selection(SelectionLevel.WORKBOOK, Entity(id='w2', name='Returns'))

  assert tableau_session.get_selection(SelectionLevel.PROJECT).id == 'p1'
  assert tableau_session.get_selection(SelectionLevel.WORKBOOK).id == 'w2'
  assert tableau_session.get_selection(SelectionLevel.DASHBOARD) is None


def test_selection_keeps_parent_ids(tableau_session):
  tableau_session.set_selection(
    SelectionLevel.WORKBOOK,
    Entity(id='w1', name='Sales', parent_ids={'project': 'p1'}, extra={'content_url': 'sales'})
  )

  workbook = tableau_session.get_selection('workbook')
  assert workbook.parent_ids == {'project': 'p1'}
  assert workbook.extra == {'content_url': 'sales'}


def test_new_session_drops_previous_selection(tableau_session):
  tableau_session.set_selection(SelectionLevel.PROJECT, _project())

  tableau_session.set_session(PlatformIdentity.MICROSTRATEGY, 'ops', 'tok-2')

  assert tableau_session.get_selection(SelectionLevel.PROJECT) is None


def test_session_survives_reopening_the_database(tmp_path):
  first = SessionContextStore(SQLiteKeyValueStore(tmp_path / 'session.db'))
  first.set_session(PlatformIdentity.TABLEAU, 'analyst', 'tok-123')
  first.set_selection(SelectionLevel.PROJECT, _project())

  second = SessionContextStore(SQLiteKeyValueStore(tmp_path / 'session.db'))

  assert second.get_session().principal_id == 'analyst'
  assert second.get_selection(SelectionLevel.PROJECT).name == 'Finance'


def test_persisted_values_use_the_documented_keys(tmp_path):
  backend = SQLiteKeyValueStore(tmp_path / 'session.db')
  store = SessionContextStore(backend)
  store.set_session(PlatformIdentity.TABLEAU, 'analyst', 'tok-123')

  assert backend.get('isAuthenticated') == 'true'
  assert backend.get('userId') == '"analyst"'
  assert backend.get('platformIdentity') == '"tableau"'
  assert backend.get('authToken') == '"tok-123"'


def test_write_failure_degrades_to_memory_without_raising():
  failing = FailingStore()
  store = SessionContextStore(failing)

  store.set_session(PlatformIdentity.TABLEAU, 'analyst', 'tok-123')
  store.set_selection(SelectionLevel.PROJECT, _project())

  assert store.degraded is True
  assert isinstance(store.last_storage_error, StorageError)
  assert failing.attempts == 1
  assert store.get_session().principal_id == 'analyst'
  assert store.get_selection(SelectionLevel.PROJECT).id == 'p1'


def test_degradation_is_recorded_in_event_log(tmp_path):
  from migration_hub.logging.event_logger import EventLogger

  events = EventLogger(tmp_path / 'logs')
  store = SessionContextStore(FailingStore(), event_logger=events)
  store.set_session(PlatformIdentity.TABLEAU, 'analyst', 'tok')

  entries = events.recent(category='warning')
  assert [entry['message'] for entry in entries] == ['session_storage_degraded']


def test_open_session_store_falls_back_when_database_cannot_open(tmp_path):
  # a directory cannot be opened as a SQLite database file
  store = open_session_store(tmp_path)

  assert store.degraded is True
  store.set_session(PlatformIdentity.TABLEAU, 'analyst', 'tok')
  assert store.get_session() is not None


def test_undecodable_values_are_ignored():
  backend = MemoryKeyValueStore({'isAuthenticated': 'not json', 'userId': '"analyst"'})
  store = SessionContextStore(backend)
  assert store.get_session() is None

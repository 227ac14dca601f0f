import os
import tempfile

# keep the module-level services out of the working tree
os.environ.setdefault('HUB_DATA_DIR', tempfile.mkdtemp(prefix='hub-data-'))
os.environ.setdefault('HUB_SESSION_DB', os.path.join(os.environ['HUB_DATA_DIR'], 'session.db'))

from typing import Callable, Dict, List, Optional

import httpx
import pytest

from migration_hub.backends.client import BackendClient
from migration_hub.config import Settings
from migration_hub.session.context_store import SessionContextStore
from migration_hub.session.models import PlatformIdentity
from migration_hub.storage.kv_store import SQLiteKeyValueStore


class FakeBackend:
  """Routes requests by path to canned responses and records every call."""

  def __init__(self, routes: Optional[Dict[str, object]] = None) -> None:
    self.routes: Dict[str, object] = dict(routes or {})
    self.calls: List[httpx.Request] = []

  @property
  def paths(self) -> List[str]:
    return [request.url.path for request in self.calls]

  def __call__(self, request: httpx.Request) -> httpx.Response:
    self.calls.append(request)
    answer = self.routes.get(request.url.path)
    if answer is None:
      return httpx.Response(404, json={'detail': 'Not Found'})
    if callable(answer):
      return answer(request)
    if isinstance(answer, httpx.Response):
      return answer
    return httpx.Response(200, json=answer)


@pytest.fixture
def config(tmp_path) -> Settings:
  return Settings(
    data_dir=tmp_path / 'data',
    session_db_path=tmp_path / 'data' / 'session.db',
    tableau_base_url='http://tableau.test',
    tableau_site_name='acme',
    microstrategy_base_url='http://mstr.test',
    poll_interval_seconds=0.01,
    task_poll_interval_seconds=0.01,
    poll_max_ticks=5
  )


@pytest.fixture
def session_store(tmp_path) -> SessionContextStore:
  return SessionContextStore(SQLiteKeyValueStore(tmp_path / 'session.db'))


@pytest.fixture
def tableau_session(session_store) -> SessionContextStore:
  session_store.set_session(PlatformIdentity.TABLEAU, 'analyst', 'tok-123')
  return session_store


@pytest.fixture
def make_backend(config) -> Callable[..., BackendClient]:
  def factory(store: SessionContextStore, handler) -> BackendClient:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return BackendClient(store, http_client=client, config=config)
  return factory


@pytest.fixture
def fake_backend() -> FakeBackend:
  return FakeBackend()

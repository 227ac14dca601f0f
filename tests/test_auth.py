"""Tests for backend login."""

import json

import httpx
import pytest

from migration_hub.errors import AuthenticationError, NoActivePlatform
from migration_hub.session.auth import Authenticator
from migration_hub.session.models import PlatformIdentity


@pytest.fixture
def authenticator(session_store, make_backend, fake_backend):
  return Authenticator(make_backend(session_store, fake_backend))


@pytest.mark.asyncio
async def test_tableau_login_starts_session(authenticator, fake_backend, session_store):
  fake_backend.routes['/auth/tableau'] = {'authToken': 'tab-token', 'userId': 'u-42', 'site': 'acme'}

  snapshot = await authenticator.login(
    PlatformIdentity.TABLEAU,
    {'token_name': 'migration-pat', 'token_value': 'secret'}
  )

  assert snapshot.platform is PlatformIdentity.TABLEAU
  assert snapshot.principal_id == 'u-42'
  assert snapshot.auth_token == 'tab-token'
  assert session_store.get_session() == snapshot
  request = fake_backend.calls[0]
  assert request.url.host == 'tableau.test'
  assert json.loads(request.content)['token_name'] == 'migration-pat'
  assert 'X-Tableau-Auth' not in request.headers


@pytest.mark.asyncio
async def test_principal_falls_back_to_submitted_username(authenticator, fake_backend):
  fake_backend.routes['/api/auth/login'] = {'token': 'mstr-token'}

  snapshot = await authenticator.login('microstrategy', {'username': 'administrator', 'password': 'pw'})

  assert snapshot.platform is PlatformIdentity.MICROSTRATEGY
  assert snapshot.principal_id == 'administrator'
  assert fake_backend.calls[0].url.host == 'mstr.test'


@pytest.mark.asyncio
async def test_rejected_login_leaves_no_session(authenticator, fake_backend, session_store):
  fake_backend.routes['/auth/tableau'] = httpx.Response(401, json={'detail': 'Invalid personal access token'})

  with pytest.raises(AuthenticationError, match='Invalid personal access token'):
    await authenticator.login(PlatformIdentity.TABLEAU, {'token_name': 'x', 'token_value': 'y'})

  assert session_store.get_session() is None


@pytest.mark.asyncio
async def test_response_without_token_is_rejected(authenticator, fake_backend, session_store):
  fake_backend.routes['/auth/tableau'] = {'userId': 'u-42'}

  with pytest.raises(AuthenticationError):
    await authenticator.login(PlatformIdentity.TABLEAU, {'token_name': 'x'})

  assert session_store.get_session() is None


@pytest.mark.asyncio
async def test_unreachable_backend_is_an_authentication_error(authenticator, fake_backend):
  def unreachable(request):
    raise httpx.ConnectError('connection refused', request=request)

  fake_backend.routes['/auth/tableau'] = unreachable

  with pytest.raises(AuthenticationError, match='Could not reach tableau'):
    await authenticator.login(PlatformIdentity.TABLEAU, {'token_name': 'x'})


@pytest.mark.asyncio
async def test_unknown_platform_cannot_log_in(authenticator, fake_backend):
  with pytest.raises(NoActivePlatform):
    await authenticator.login('looker', {'username': 'x'})
  assert fake_backend.calls == []

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from migration_hub.backends.client import BackendClient, error_detail
from migration_hub.backends.selector import resolve_base_address
from migration_hub.errors import AuthenticationError
from migration_hub.session.models import PlatformIdentity, SessionSnapshot

logger = logging.getLogger(__name__)

PRINCIPAL_FIELDS = ('principalId', 'userId', 'user_id', 'username')
TOKEN_FIELDS = ('authToken', 'token', 'auth_token')


def _first(payload: Dict[str, Any], names) -> Optional[str]:
  for name in names:
    value = payload.get(name)
    if value not in (None, ''):
      return str(value)
  return None


class Authenticator:
  def __init__(self, backend: BackendClient) -> None:
    self.backend = backend

  async def login(self, platform: PlatformIdentity, credentials: Dict[str, Any]) -> SessionSnapshot:
    profile = resolve_base_address(platform, self.backend.config)
    try:
      response = await self.backend.post(profile, None, profile.auth_path, credentials)
    except httpx.HTTPError as exc:
      raise AuthenticationError(f'Could not reach {profile.platform.value} backend: {exc}') from exc
    if not response.is_success:
      raise AuthenticationError(error_detail(response) or 'Authentication failed')
    try:
      body = response.json()
    except ValueError as exc:
      raise AuthenticationError('Authentication response was not JSON') from exc
    if not isinstance(body, dict):
      raise AuthenticationError('Authentication response had an unexpected shape')

    principal = _first(body, PRINCIPAL_FIELDS) or _first(credentials, ('username', 'token_name'))
    token = _first(body, TOKEN_FIELDS)
    if not principal or not token:
      raise AuthenticationError('Authentication response did not carry a principal and token')

    self.backend.session_store.set_session(profile.platform, principal, token)
    logger.info('Authenticated %s against %s', principal, profile.platform.value)
    return self.backend.session_store.get_session()

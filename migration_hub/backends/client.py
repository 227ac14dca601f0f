from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Tuple

import httpx

from migration_hub.backends.selector import BackendProfile, resolve_base_address
from migration_hub.config import Settings, settings as default_settings
from migration_hub.errors import NoActivePlatform
from migration_hub.session.context_store import SessionContextStore

logger = logging.getLogger(__name__)


def create_http_client(config: Settings) -> httpx.AsyncClient:
  if config.request_timeout_seconds is None:
    return httpx.AsyncClient()
  return httpx.AsyncClient(timeout=config.request_timeout_seconds)


def error_detail(response: httpx.Response) -> str:
  try:
    data = response.json()
  except ValueError:
    return response.text or response.reason_phrase
  if isinstance(data, dict):
    return str(data.get('detail') or data.get('message') or data)
  return str(data)


class BackendClient:
  """Sends requests to whichever backend the current session is bound to."""

  def __init__(
    self,
    session_store: SessionContextStore,
    http_client: Optional[httpx.AsyncClient] = None,
    config: Optional[Settings] = None
  ) -> None:
    self.session_store = session_store
    self.config = config or default_settings
    self._client = http_client or create_http_client(self.config)

  def active_profile(self) -> Tuple[BackendProfile, Optional[str]]:
    snapshot = self.session_store.get_session()
    if snapshot is None:
      raise NoActivePlatform('No authenticated session; log in first.')
    return resolve_base_address(snapshot.platform, self.config), snapshot.auth_token

  async def get(
    self,
    profile: BackendProfile,
    token: Optional[str],
    path: str,
    params: Optional[Dict[str, str]] = None
  ) -> httpx.Response:
    url = profile.url(path)
    logger.debug('GET %s params=%s', url, params)
    return await self._client.get(url, params=params or None, headers=profile.auth_headers(token))

  async def post(
    self,
    profile: BackendProfile,
    token: Optional[str],
    path: str,
    payload: Optional[Dict[str, Any]] = None
  ) -> httpx.Response:
    url = profile.url(path)
    logger.debug('POST %s', url)
    headers = profile.auth_headers(token)
    headers['Content-Type'] = 'application/json'
    return await self._client.post(url, json=payload or {}, headers=headers)

  async def aclose(self) -> None:
    await self._client.aclose()

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional

from migration_hub.config import Settings, settings as default_settings
from migration_hub.errors import NoActivePlatform
from migration_hub.session.models import PlatformIdentity


@dataclass(frozen=True)
class BackendProfile:
  """Base address plus the request-shaping rules of one backend family."""

  platform: PlatformIdentity
  base_url: str
  auth_path: str
  auth_header: str
  path_vars: Dict[str, str] = field(default_factory=dict)

  def url(self, path: str) -> str:
    return f'{self.base_url.rstrip("/")}/{path.lstrip("/")}'

  def auth_headers(self, token: Optional[str]) -> Dict[str, str]:
    headers = {'Accept': 'application/json'}
    if token:
      headers[self.auth_header] = token
    return headers


def build_profiles(config: Settings) -> Dict[PlatformIdentity, BackendProfile]:
  return {
    PlatformIdentity.TABLEAU: BackendProfile(
      platform=PlatformIdentity.TABLEAU,
      base_url=config.tableau_base_url,
      auth_path='/auth/tableau',
      auth_header='X-Tableau-Auth',
      path_vars={'site': config.tableau_site_name}
    ),
    PlatformIdentity.MICROSTRATEGY: BackendProfile(
      platform=PlatformIdentity.MICROSTRATEGY,
      base_url=config.microstrategy_base_url,
      auth_path='/api/auth/login',
      auth_header='X-MSTR-AuthToken'
    )
  }


def resolve_base_address(platform: Optional[PlatformIdentity], config: Optional[Settings] = None) -> BackendProfile:
  identity = PlatformIdentity.parse(platform) if platform is not None else PlatformIdentity.NONE
  profile = build_profiles(config or default_settings).get(identity)
  if profile is None:
    raise NoActivePlatform(f'No backend is mapped to platform identity {identity.value!r}.')
  return profile

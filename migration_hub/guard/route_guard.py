from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from migration_hub.session.context_store import SessionContextStore
from migration_hub.session.models import PlatformIdentity

LOGIN_LOCATION = '/login'

REASON_UNAUTHENTICATED = 'unauthenticated'
REASON_WRONG_PLATFORM = 'wrong_platform'
REASON_LOGGED_OUT = 'logged_out'
REASON_PLATFORM_SWITCH = 'platform_switch'


@dataclass(frozen=True)
class Allow:
  platform: PlatformIdentity
  allowed: bool = True


@dataclass(frozen=True)
class RedirectTo:
  location: str
  reason: str
  next: Optional[str] = None
  allowed: bool = False

  def as_dict(self) -> Dict[str, Any]:
    return {'redirect_to': self.location, 'reason': self.reason, 'next': self.next}


GuardDecision = Union[Allow, RedirectTo]


def guard_route(
  session_store: SessionContextStore,
  requested_location: Optional[str] = None,
  required_platform: Optional[PlatformIdentity] = None
) -> GuardDecision:
  snapshot = session_store.get_session()
  if snapshot is None:
    return RedirectTo(LOGIN_LOCATION, REASON_UNAUTHENTICATED, next=requested_location)
  if required_platform is not None and snapshot.platform is not PlatformIdentity.parse(required_platform):
    return RedirectTo(LOGIN_LOCATION, REASON_WRONG_PLATFORM, next=requested_location)
  return Allow(platform=snapshot.platform)


def logout(session_store: SessionContextStore) -> RedirectTo:
  session_store.clear_session()
  return RedirectTo(LOGIN_LOCATION, REASON_LOGGED_OUT)


def switch_platform(session_store: SessionContextStore, requested_location: Optional[str] = None) -> RedirectTo:
  # selections from the old platform must not leak into the new one
  session_store.clear_session()
  return RedirectTo(LOGIN_LOCATION, REASON_PLATFORM_SWITCH, next=requested_location)

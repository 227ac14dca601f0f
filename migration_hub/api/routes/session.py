from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from migration_hub.api.globals import HubServices, get_services
from migration_hub.api.utils import enforce_guard
from migration_hub.errors import AuthenticationError, NoActivePlatform
from migration_hub.guard.route_guard import RedirectTo, guard_route, logout, switch_platform
from migration_hub.session.models import Entity, PlatformIdentity, SelectionLevel

router = APIRouter()

class LoginPayload(BaseModel):
  platform: PlatformIdentity = Field(..., description='Backend family to authenticate against.')
  credentials: Dict[str, Any] = Field(default_factory=dict, description='Forwarded verbatim to the backend.')

class SelectionPayload(BaseModel):
  id: str
  name: str = Field(default='')
  parent_ids: Dict[str, str] = Field(default_factory=dict)
  extra: Dict[str, Any] = Field(default_factory=dict)

class SwitchPlatformPayload(BaseModel):
  next: Optional[str] = Field(default=None, description='Location to return to after logging in again.')

@router.post('/auth/login')
async def login(payload: LoginPayload, services: HubServices = Depends(get_services)) -> Dict[str, Any]:
  if payload.platform is PlatformIdentity.NONE:
    raise HTTPException(status_code=400, detail='A platform must be chosen.')
  try:
    snapshot = await services.authenticator.login(payload.platform, payload.credentials)
  except AuthenticationError as exc:
    raise HTTPException(status_code=401, detail=str(exc)) from exc
  except NoActivePlatform as exc:
    raise HTTPException(status_code=400, detail=str(exc)) from exc
  return snapshot.to_dict()

@router.get('/session')
async def read_session(services: HubServices = Depends(get_services)) -> Dict[str, Any]:
  snapshot = services.session_store.get_session()
  return {
    'session': snapshot.to_dict() if snapshot else None,
    'storage_degraded': services.session_store.degraded
  }

@router.get('/guard')
async def check_route(
  location: Optional[str] = None,
  platform: Optional[PlatformIdentity] = None,
  services: HubServices = Depends(get_services)
) -> Dict[str, Any]:
  decision = guard_route(services.session_store, location, platform)
  if isinstance(decision, RedirectTo):
    return {'allowed': False, **decision.as_dict()}
  return {'allowed': True, 'platform': decision.platform.value}

@router.post('/session/logout')
async def logout_session(services: HubServices = Depends(get_services)) -> Dict[str, Any]:
  services.orchestrator.reset()
  return logout(services.session_store).as_dict()

@router.post('/session/switch-platform')
async def switch_session_platform(
  payload: SwitchPlatformPayload,
  services: HubServices = Depends(get_services)
) -> Dict[str, Any]:
  services.orchestrator.reset()
  return switch_platform(services.session_store, payload.next).as_dict()

@router.put('/session/selection/{level}')
async def put_selection(
  level: SelectionLevel,
  payload: SelectionPayload,
  request: Request,
  services: HubServices = Depends(get_services)
) -> Dict[str, Any]:
  enforce_guard(services.session_store, str(request.url.path))
  entity = Entity(id=payload.id, name=payload.name, parent_ids=payload.parent_ids, extra=payload.extra)
  services.session_store.set_selection(level, entity)
  return {'level': level.value, 'selection': entity.to_dict()}

@router.get('/session/selection/{level}')
async def get_selection(level: SelectionLevel, request: Request, services: HubServices = Depends(get_services)) -> Dict[str, Any]:
  enforce_guard(services.session_store, str(request.url.path))
  entity = services.session_store.get_selection(level)
  return {'level': level.value, 'selection': entity.to_dict() if entity else None}

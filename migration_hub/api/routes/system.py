from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends

from migration_hub.api.globals import HubServices, get_services

router = APIRouter()

@router.get('/health')
async def health(services: HubServices = Depends(get_services)) -> Dict[str, Any]:
  snapshot = services.session_store.get_session()
  return {
    'status': 'ok',
    'platform': snapshot.platform.value if snapshot else None,
    'storage_degraded': services.session_store.degraded,
    'active_scope': services.orchestrator.active_scope
  }

@router.get('/events')
async def recent_events(limit: int = 200, category: Optional[str] = None, services: HubServices = Depends(get_services)) -> Dict[str, Any]:
  return {'events': services.event_logger.recent(limit=limit, category=category)}

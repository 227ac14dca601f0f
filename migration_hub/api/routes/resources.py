from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Request

from migration_hub.api.globals import HubServices, get_services
from migration_hub.api.utils import enforce_guard
from migration_hub.errors import MissingParameter, NoActivePlatform, PrimaryFetchError, UnsupportedResourceKind
from migration_hub.resolver.endpoints import ResourceKind, owning_platform

router = APIRouter()

@router.get('/resources/{kind}')
async def fetch_resource(kind: ResourceKind, request: Request, services: HubServices = Depends(get_services)) -> Dict[str, Any]:
  enforce_guard(services.session_store, str(request.url.path), owning_platform(kind))
  params = dict(request.query_params)
  try:
    resources = await services.resolver.fetch_resource(kind, params)
  except NoActivePlatform as exc:
    raise HTTPException(status_code=409, detail=str(exc)) from exc
  except (MissingParameter, UnsupportedResourceKind) as exc:
    raise HTTPException(status_code=400, detail=str(exc)) from exc
  except PrimaryFetchError as exc:
    raise HTTPException(status_code=502, detail={'message': str(exc), 'upstream_status': exc.status_code}) from exc
  return {
    'kind': kind.value,
    'count': len(resources),
    'items': [resource.as_dict() for resource in resources]
  }

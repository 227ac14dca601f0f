from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from migration_hub.api.globals import HubServices, get_services
from migration_hub.api.utils import enforce_guard, serialize_job
from migration_hub.conversion.models import ConversionKind
from migration_hub.errors import ConvertNowFailed, KickoffFailed, NoActivePlatform

router = APIRouter()

class PollingPayload(BaseModel):
  max_ticks: Optional[int] = Field(default=None, ge=1)
  settle_after_stable_ticks: Optional[int] = Field(default=None, ge=1)

class ConvertNowPayload(BaseModel):
  ids: List[str] = Field(..., min_length=1, description='Source item ids to convert.')

def _guard(request: Request, services: HubServices) -> None:
  enforce_guard(services.session_store, str(request.url.path))

@router.get('/conversion/{scope_id}/{kind}')
async def conversion_status(
  scope_id: str,
  kind: ConversionKind,
  request: Request,
  services: HubServices = Depends(get_services)
) -> Dict[str, Any]:
  _guard(request, services)
  orchestrator = services.orchestrator
  job = orchestrator.jobs.get((scope_id, kind))
  items = orchestrator.cache_for(scope_id, kind).snapshot() if scope_id == orchestrator.active_scope else []
  return serialize_job(job, items)

@router.post('/conversion/{scope_id}/{kind}/start')
async def start_conversion(
  scope_id: str,
  kind: ConversionKind,
  request: Request,
  services: HubServices = Depends(get_services)
) -> Dict[str, Any]:
  _guard(request, services)
  try:
    job = await services.orchestrator.start_conversion_job(scope_id, kind)
  except NoActivePlatform as exc:
    raise HTTPException(status_code=409, detail=str(exc)) from exc
  except KickoffFailed as exc:
    raise HTTPException(status_code=502, detail=str(exc)) from exc
  return {'job': job.summary()}

@router.post('/conversion/{scope_id}/{kind}/poll')
async def poll_conversion(
  scope_id: str,
  kind: ConversionKind,
  request: Request,
  services: HubServices = Depends(get_services)
) -> Dict[str, Any]:
  _guard(request, services)
  try:
    items = await services.orchestrator.poll_once(scope_id, kind)
  except NoActivePlatform as exc:
    raise HTTPException(status_code=409, detail=str(exc)) from exc
  return serialize_job(services.orchestrator.jobs.get((scope_id, kind)), items)

@router.post('/conversion/{scope_id}/{kind}/polling')
async def start_polling(
  scope_id: str,
  kind: ConversionKind,
  payload: PollingPayload,
  request: Request,
  services: HubServices = Depends(get_services)
) -> Dict[str, Any]:
  _guard(request, services)
  job = services.orchestrator.start_polling(
    scope_id,
    kind,
    max_ticks=payload.max_ticks,
    settle_after_stable_ticks=payload.settle_after_stable_ticks
  )
  return {'job': job.summary()}

@router.delete('/conversion/{scope_id}/{kind}/polling')
async def stop_polling(
  scope_id: str,
  kind: ConversionKind,
  request: Request,
  services: HubServices = Depends(get_services)
) -> Dict[str, Any]:
  _guard(request, services)
  job = services.orchestrator.stop_polling(scope_id, kind)
  if job is None:
    raise HTTPException(status_code=404, detail='No conversion job for this scope.')
  return {'job': job.summary()}

@router.post('/conversion/{scope_id}/{kind}/convert')
async def convert_now(
  scope_id: str,
  kind: ConversionKind,
  payload: ConvertNowPayload,
  request: Request,
  services: HubServices = Depends(get_services)
) -> Dict[str, Any]:
  _guard(request, services)
  try:
    items = await services.orchestrator.convert_now(scope_id, kind, payload.ids)
  except NoActivePlatform as exc:
    raise HTTPException(status_code=409, detail=str(exc)) from exc
  except ConvertNowFailed as exc:
    raise HTTPException(status_code=502, detail=str(exc)) from exc
  return serialize_job(services.orchestrator.jobs.get((scope_id, kind)), items)

@router.get('/conversion/{scope_id}/{kind}/export')
async def export_conversions(
  scope_id: str,
  kind: ConversionKind,
  request: Request,
  services: HubServices = Depends(get_services)
) -> Dict[str, Any]:
  _guard(request, services)
  return {
    'scope_id': scope_id,
    'kind': kind.value,
    'expressions': services.orchestrator.export_scope(scope_id, kind)
  }

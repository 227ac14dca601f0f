from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from migration_hub.api.globals import HubServices, get_services
from migration_hub.api.utils import enforce_guard
from migration_hub.errors import MigrationFailed, NoActivePlatform, UnsupportedResourceKind
from migration_hub.session.models import PlatformIdentity

router = APIRouter()

class MigrateWorkbookPayload(BaseModel):
  workbook_name: str = Field(..., min_length=1)
  powerbi_workspace: Optional[str] = Field(default=None, description='Target workspace; the backend default when omitted.')
  convert_calculated_fields: bool = True
  create_powerbi_model: bool = True
  generate_relationship_code: bool = True
  poll: bool = Field(default=True, description='Start polling the model creation task right away.')

class TaskPollingPayload(BaseModel):
  max_ticks: Optional[int] = Field(default=None, ge=1)

def _guard(request: Request, services: HubServices) -> None:
  enforce_guard(services.session_store, str(request.url.path), PlatformIdentity.TABLEAU)

@router.post('/migration/workbooks')
async def migrate_workbook(
  payload: MigrateWorkbookPayload,
  request: Request,
  services: HubServices = Depends(get_services)
) -> Dict[str, Any]:
  _guard(request, services)
  body = payload.model_dump(exclude={'poll'}, exclude_none=True)
  try:
    report, task = await services.orchestrator.migrate_workbook(body)
  except NoActivePlatform as exc:
    raise HTTPException(status_code=409, detail=str(exc)) from exc
  except UnsupportedResourceKind as exc:
    raise HTTPException(status_code=400, detail=str(exc)) from exc
  except MigrationFailed as exc:
    raise HTTPException(status_code=502, detail=str(exc)) from exc
  if task is not None and payload.poll:
    task = services.orchestrator.start_task_polling(task.task_id)
  return {'migration': report, 'task': task.summary() if task else None}

@router.get('/migration/tasks/{task_id}')
async def task_status(task_id: str, request: Request, services: HubServices = Depends(get_services)) -> Dict[str, Any]:
  _guard(request, services)
  task = services.orchestrator.tasks.get(task_id)
  if task is None:
    raise HTTPException(status_code=404, detail='Unknown model creation task.')
  return {'task': task.summary(), 'result': task.result}

@router.post('/migration/tasks/{task_id}/poll')
async def poll_task(task_id: str, request: Request, services: HubServices = Depends(get_services)) -> Dict[str, Any]:
  _guard(request, services)
  try:
    task = await services.orchestrator.poll_task_status(task_id)
  except NoActivePlatform as exc:
    raise HTTPException(status_code=409, detail=str(exc)) from exc
  except UnsupportedResourceKind as exc:
    raise HTTPException(status_code=400, detail=str(exc)) from exc
  return {'task': task.summary(), 'result': task.result}

@router.post('/migration/tasks/{task_id}/polling')
async def start_task_polling(
  task_id: str,
  payload: TaskPollingPayload,
  request: Request,
  services: HubServices = Depends(get_services)
) -> Dict[str, Any]:
  _guard(request, services)
  task = services.orchestrator.start_task_polling(task_id, max_ticks=payload.max_ticks)
  return {'task': task.summary()}

@router.delete('/migration/tasks/{task_id}/polling')
async def stop_task_polling(task_id: str, request: Request, services: HubServices = Depends(get_services)) -> Dict[str, Any]:
  _guard(request, services)
  task = services.orchestrator.stop_task_polling(task_id)
  if task is None:
    raise HTTPException(status_code=404, detail='Unknown model creation task.')
  return {'task': task.summary()}

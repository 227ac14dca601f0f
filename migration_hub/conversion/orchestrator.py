from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Set, Tuple
from urllib.parse import quote

import httpx

from migration_hub.backends.client import BackendClient, error_detail
from migration_hub.conversion.cache import ConversionCache
from migration_hub.conversion.models import (
  ConversionJob,
  ConversionKind,
  ConvertedExpression,
  JobState,
  MigrationTask,
  TaskStatus
)
from migration_hub.errors import (
  ConvertNowFailed,
  KickoffFailed,
  MigrationFailed,
  NoActivePlatform,
  PollTickFailed,
  UnsupportedResourceKind
)
from migration_hub.resolver.endpoints import CONVERSION_ENDPOINTS, MIGRATION_ENDPOINTS
from migration_hub.resolver.envelope import extract_items

logger = logging.getLogger(__name__)

UpdateCallback = Callable[[ConversionJob, List[ConvertedExpression]], Any]
StatusCallback = Callable[[MigrationTask], Any]


def _extract_conversions(body: Any, kind: ConversionKind) -> List[ConvertedExpression]:
  items = extract_items(body, 'conversions') or extract_items(body, kind.value)
  converted: List[ConvertedExpression] = []
  for item in items:
    if not isinstance(item, dict):
      continue
    expression = ConvertedExpression.from_payload(item)
    if expression is not None:
      converted.append(expression)
  return converted


class ConversionOrchestrator:
  """Drives background conversion jobs and the client-side conversion cache.

  Jobs are keyed by ``(scope_id, kind)``. Only one scope is active at a time;
  entering a new scope stops every poll loop of the previous one and clears
  its caches. The backend never says a job is done, so a poll loop settles
  only when the caller stops it or its tick cap is reached.

  Workbook migrations share the same timer machinery, but their model
  creation tasks report a terminal status and stop polling by themselves.
  """

  def __init__(
    self,
    backend: BackendClient,
    event_logger=None,
    poll_interval_seconds: Optional[float] = None,
    max_ticks: Optional[int] = None,
    task_poll_interval_seconds: Optional[float] = None
  ) -> None:
    self.backend = backend
    self._event_logger = event_logger
    self.poll_interval_seconds = (
      poll_interval_seconds if poll_interval_seconds is not None else backend.config.poll_interval_seconds
    )
    self.task_poll_interval_seconds = (
      task_poll_interval_seconds if task_poll_interval_seconds is not None
      else backend.config.task_poll_interval_seconds
    )
    self.max_ticks = max_ticks if max_ticks is not None else backend.config.poll_max_ticks
    self.active_scope: Optional[str] = None
    self.jobs: Dict[Tuple[str, ConversionKind], ConversionJob] = {}
    self.caches: Dict[ConversionKind, ConversionCache] = {}
    self.tasks: Dict[str, MigrationTask] = {}
    self._tick_tasks: Set[asyncio.Task] = set()

  def _enter_scope(self, scope_id: str) -> None:
    if scope_id == self.active_scope:
      return
    if self.active_scope is not None:
      logger.info('Scope changed from %s to %s, clearing conversion cache', self.active_scope, scope_id)
    self.stop_all()
    self.jobs.clear()
    self.caches.clear()
    self.active_scope = scope_id

  def cache_for(self, scope_id: str, kind: ConversionKind) -> ConversionCache:
    kind = ConversionKind(kind)
    self._enter_scope(scope_id)
    cache = self.caches.get(kind)
    if cache is None:
      cache = self.caches[kind] = ConversionCache(scope_id, kind)
    return cache

  def job(self, scope_id: str, kind: ConversionKind) -> ConversionJob:
    kind = ConversionKind(kind)
    self._enter_scope(scope_id)
    key = (scope_id, kind)
    if key not in self.jobs:
      self.jobs[key] = ConversionJob(scope_id=scope_id, kind=kind)
    return self.jobs[key]

  def _paths(self, scope_id: str, kind: ConversionKind):
    profile, token = self.backend.active_profile()
    endpoints = CONVERSION_ENDPOINTS[profile.platform]
    fields = {'scope_id': quote(scope_id, safe=''), 'kind': kind.value}
    return profile, token, endpoints, fields

  def _spawn(self, coro: Awaitable[None]) -> None:
    task = asyncio.get_running_loop().create_task(coro)
    self._tick_tasks.add(task)
    task.add_done_callback(self._tick_tasks.discard)

  async def _run_timer(
    self,
    owner,
    fire: Callable[[], Awaitable[None]],
    max_ticks: Optional[int],
    interval: float
  ) -> int:
    """Fire a tick every ``interval`` seconds, skipping while one is in flight."""
    fired = 0
    while max_ticks is None or fired < max_ticks:
      fired += 1
      if owner.in_flight:
        owner.skipped_ticks += 1
      else:
        self._spawn(fire())
      await asyncio.sleep(interval)
      if owner.finished():
        break
    return fired

  async def start_conversion_job(self, scope_id: str, kind: ConversionKind) -> ConversionJob:
    job = self.job(scope_id, kind)
    job.state = JobState.KICKOFF
    job.updated_at = time.time()
    try:
      # the request stays on the wire even if the caller goes away
      await asyncio.shield(self._send_kickoff(job))
    except (KickoffFailed, NoActivePlatform) as exc:
      job.state = JobState.IDLE
      job.last_error = str(exc)
      logger.error('Kickoff failed for %s/%s: %s', scope_id, job.kind.value, exc)
      if self._event_logger:
        self._event_logger.log_error('kickoff_failed', {'scope_id': scope_id, 'kind': job.kind.value, 'error': str(exc)})
      raise
    job.state = JobState.POLLING
    job.started_at = job.updated_at = time.time()
    job.last_error = None
    logger.info('Background conversion started for %s/%s', scope_id, job.kind.value)
    return job

  async def _send_kickoff(self, job: ConversionJob) -> None:
    profile, token, endpoints, fields = self._paths(job.scope_id, job.kind)
    try:
      response = await self.backend.post(profile, token, endpoints.kickoff.format(**fields), {'scope_id': job.scope_id})
    except httpx.HTTPError as exc:
      raise KickoffFailed(f'Kickoff request failed: {exc}') from exc
    if not response.is_success:
      raise KickoffFailed(f'Kickoff rejected with HTTP {response.status_code}: {error_detail(response)}')

  async def poll_once(self, scope_id: str, kind: ConversionKind) -> List[ConvertedExpression]:
    """Read the backend's cached results once and merge new items.

    Returns the full cache snapshot. A tick that would overlap one still in
    flight is skipped, and a failed tick is logged without raising.
    """
    snapshot, _ = await self._poll(self.job(scope_id, kind))
    return snapshot

  async def _poll(self, job: ConversionJob) -> Tuple[List[ConvertedExpression], List[ConvertedExpression]]:
    scope_id = job.scope_id
    cache = self.cache_for(scope_id, job.kind)
    if job.in_flight:
      job.skipped_ticks += 1
      logger.debug('Skipping overlapping poll tick for %s/%s', scope_id, job.kind.value)
      return cache.snapshot(), []

    job.in_flight = True
    try:
      items = await self._fetch_cached(job)
    except PollTickFailed as exc:
      job.failed_ticks += 1
      job.last_error = str(exc)
      logger.warning('Poll tick failed for %s/%s: %s', scope_id, job.kind.value, exc)
      if self._event_logger:
        self._event_logger.log_warning('poll_tick_failed', {'scope_id': scope_id, 'kind': job.kind.value, 'error': str(exc)})
      return cache.snapshot(), []
    finally:
      job.in_flight = False

    if self.caches.get(job.kind) is not cache:
      logger.debug('Discarding poll result for abandoned scope %s', scope_id)
      return cache.snapshot(), []

    added = cache.merge(items)
    job.ticks += 1
    if added or not len(cache):
      job.stable_ticks = 0
    else:
      job.stable_ticks += 1
    job.last_count = len(cache)
    job.updated_at = time.time()
    if added:
      logger.info('Merged %s new conversions for %s/%s', len(added), scope_id, job.kind.value)
    return cache.snapshot(), added

  async def _fetch_cached(self, job: ConversionJob) -> List[ConvertedExpression]:
    profile, token, endpoints, fields = self._paths(job.scope_id, job.kind)
    try:
      response = await self.backend.get(profile, token, endpoints.cached.format(**fields))
    except httpx.HTTPError as exc:
      raise PollTickFailed(f'Cached results request failed: {exc}') from exc
    if not response.is_success:
      raise PollTickFailed(f'Cached results answered HTTP {response.status_code}')
    try:
      body = response.json()
    except ValueError as exc:
      raise PollTickFailed('Cached results were not JSON') from exc
    return _extract_conversions(body, job.kind)

  def start_polling(
    self,
    scope_id: str,
    kind: ConversionKind,
    max_ticks: Optional[int] = None,
    settle_after_stable_ticks: Optional[int] = None,
    on_update: Optional[UpdateCallback] = None
  ) -> ConversionJob:
    """Start the poll timer for a job; must be called from a running event loop."""
    job = self.job(scope_id, kind)
    if job.polling:
      return job
    job.state = JobState.POLLING
    job.max_ticks = max_ticks if max_ticks is not None else self.max_ticks
    job.settle_after_stable_ticks = settle_after_stable_ticks
    job.poll_task = asyncio.get_running_loop().create_task(self._poll_loop(job, on_update))
    return job

  async def _poll_loop(self, job: ConversionJob, on_update: Optional[UpdateCallback]) -> None:
    try:
      fired = await self._run_timer(
        job, lambda: self._tick(job, on_update), job.max_ticks, self.poll_interval_seconds
      )
      if job.stable_enough():
        logger.info('Conversion %s/%s settled on a stable item count', job.scope_id, job.kind.value)
      logger.info('Polling for %s/%s settled after %s ticks', job.scope_id, job.kind.value, fired)
    finally:
      job.state = JobState.SETTLED
      job.updated_at = time.time()

  async def _tick(self, job: ConversionJob, on_update: Optional[UpdateCallback]) -> None:
    if self.jobs.get((job.scope_id, job.kind)) is not job:
      return
    try:
      _, added = await self._poll(job)
    except NoActivePlatform as exc:
      logger.warning('Stopping poll loop for %s/%s: %s', job.scope_id, job.kind.value, exc)
      self.stop_polling(job.scope_id, job.kind)
      return
    if on_update is not None and added:
      try:
        on_update(job, added)
      except Exception:
        logger.exception('Conversion update callback failed for %s/%s', job.scope_id, job.kind.value)

  def stop_polling(self, scope_id: str, kind: ConversionKind) -> Optional[ConversionJob]:
    job = self.jobs.get((scope_id, ConversionKind(kind)))
    if job is None:
      return None
    if job.poll_task is not None and not job.poll_task.done():
      job.poll_task.cancel()
    job.poll_task = None
    job.state = JobState.SETTLED
    job.updated_at = time.time()
    return job

  def stop_all(self) -> None:
    for scope_id, kind in list(self.jobs):
      self.stop_polling(scope_id, kind)

  async def convert_now(self, scope_id: str, kind: ConversionKind, source_ids: Iterable[str]) -> List[ConvertedExpression]:
    """Convert the given ids in one batch request, skipping ids already cached."""
    kind = ConversionKind(kind)
    cache = self.cache_for(scope_id, kind)
    pending = cache.missing(source_ids)
    if not pending:
      logger.debug('Nothing to convert for %s/%s, all ids cached', scope_id, kind.value)
      return cache.snapshot()
    try:
      items = await asyncio.shield(self._send_convert(scope_id, kind, pending))
    except ConvertNowFailed as exc:
      logger.error('Convert-now failed for %s/%s: %s', scope_id, kind.value, exc)
      if self._event_logger:
        self._event_logger.log_error('convert_now_failed', {'scope_id': scope_id, 'kind': kind.value, 'error': str(exc)})
      raise
    if self.caches.get(kind) is cache:
      added = cache.merge(items)
      logger.info('Converted %s of %s requested items for %s/%s', len(added), len(pending), scope_id, kind.value)
    return cache.snapshot()

  async def _send_convert(self, scope_id: str, kind: ConversionKind, pending: List[str]) -> List[ConvertedExpression]:
    profile, token, endpoints, fields = self._paths(scope_id, kind)
    try:
      response = await self.backend.post(
        profile, token, endpoints.convert.format(**fields), {endpoints.convert_ids_key: pending}
      )
    except httpx.HTTPError as exc:
      raise ConvertNowFailed(f'Conversion request failed: {exc}') from exc
    if not response.is_success:
      raise ConvertNowFailed(f'Conversion rejected with HTTP {response.status_code}: {error_detail(response)}')
    try:
      body = response.json()
    except ValueError as exc:
      raise ConvertNowFailed('Conversion response was not JSON') from exc
    return _extract_conversions(body, kind)

  def export_scope(self, scope_id: str, kind: ConversionKind) -> List[Dict[str, Any]]:
    if scope_id != self.active_scope:
      return []
    cache = self.caches.get(ConversionKind(kind))
    return [item.to_dict() for item in cache.snapshot()] if cache else []

  def _migration_paths(self):
    profile, token = self.backend.active_profile()
    endpoints = MIGRATION_ENDPOINTS.get(profile.platform)
    if endpoints is None:
      raise UnsupportedResourceKind(f'{profile.platform.value} has no workbook migration')
    return profile, token, endpoints

  async def migrate_workbook(self, request: Dict[str, Any]) -> Tuple[Dict[str, Any], Optional[MigrationTask]]:
    """Ask the backend to migrate a workbook; returns its report and the model task, if one started."""
    profile, token, endpoints = self._migration_paths()
    try:
      body = await asyncio.shield(self._send_migrate(profile, token, endpoints.migrate, request))
    except MigrationFailed as exc:
      logger.error('Migration of %s failed: %s', request.get('workbook_name'), exc)
      if self._event_logger:
        self._event_logger.log_error('migration_failed', {'workbook_name': request.get('workbook_name'), 'error': str(exc)})
      raise

    model = body.get('powerbi_model')
    if not isinstance(model, dict) or model.get('status') != 'creation_initiated' or not model.get('task_id'):
      logger.info('Migrated %s without a model creation task', body.get('workbook_name'))
      return body, None
    task = self.track_task(
      str(model['task_id']),
      workbook_name=str(body.get('workbook_name') or request.get('workbook_name') or ''),
      workspace=model.get('workspace')
    )
    logger.info('Migrated %s, model creation task %s started', task.workbook_name, task.task_id)
    return body, task

  async def _send_migrate(self, profile, token, path: str, request: Dict[str, Any]) -> Dict[str, Any]:
    try:
      response = await self.backend.post(profile, token, path, request)
    except httpx.HTTPError as exc:
      raise MigrationFailed(f'Migration request failed: {exc}') from exc
    if not response.is_success:
      raise MigrationFailed(error_detail(response) or f'HTTP {response.status_code}')
    try:
      body = response.json()
    except ValueError as exc:
      raise MigrationFailed('Migration response was not JSON') from exc
    if not isinstance(body, dict):
      raise MigrationFailed('Migration response had an unexpected shape')
    if body.get('status') != 'success':
      model = body.get('powerbi_model')
      message = model.get('message') if isinstance(model, dict) else None
      raise MigrationFailed(message or 'Migration failed')
    return body

  def track_task(self, task_id: str, workbook_name: str = '', workspace: Optional[str] = None) -> MigrationTask:
    task = self.tasks.get(task_id)
    if task is None:
      task = self.tasks[task_id] = MigrationTask(task_id=task_id, workbook_name=workbook_name, workspace=workspace)
    return task

  async def poll_task_status(self, task_id: str) -> MigrationTask:
    """Read the model creation status once. Failed reads are logged, never raised."""
    task = self.track_task(task_id)
    if task.terminal:
      return task
    if task.in_flight:
      task.skipped_ticks += 1
      return task

    task.in_flight = True
    try:
      body = await self._fetch_task_status(task)
    except MigrationFailed as exc:
      task.failed_ticks += 1
      task.last_error = str(exc)
      logger.warning('Status check for task %s failed: %s', task_id, exc)
      if self._event_logger:
        self._event_logger.log_warning('task_poll_failed', {'task_id': task_id, 'error': str(exc)})
      return task
    finally:
      task.in_flight = False

    task.ticks += 1
    task.status = TaskStatus.parse(body.get('status'))
    task.result = body
    task.workspace = body.get('workspace') or task.workspace
    if task.status is TaskStatus.FAILED:
      task.error = str(body.get('error') or 'Model creation failed')
    task.updated_at = time.time()
    if task.terminal:
      logger.info('Model creation task %s %s', task_id, task.status.value)
    return task

  async def _fetch_task_status(self, task: MigrationTask) -> Dict[str, Any]:
    profile, token, endpoints = self._migration_paths()
    path = endpoints.task_status.format(task_id=quote(task.task_id, safe=''))
    try:
      response = await self.backend.get(profile, token, path)
    except httpx.HTTPError as exc:
      raise MigrationFailed(f'Status request failed: {exc}') from exc
    if not response.is_success:
      raise MigrationFailed(f'Status request answered HTTP {response.status_code}: {error_detail(response)}')
    try:
      body = response.json()
    except ValueError as exc:
      raise MigrationFailed('Status response was not JSON') from exc
    if not isinstance(body, dict):
      raise MigrationFailed('Status response had an unexpected shape')
    return body

  def start_task_polling(
    self,
    task_id: str,
    max_ticks: Optional[int] = None,
    on_status: Optional[StatusCallback] = None
  ) -> MigrationTask:
    task = self.track_task(task_id)
    if task.polling or task.terminal:
      return task
    task.max_ticks = max_ticks if max_ticks is not None else self.max_ticks
    task.poll_task = asyncio.get_running_loop().create_task(self._task_loop(task, on_status))
    return task

  async def _task_loop(self, task: MigrationTask, on_status: Optional[StatusCallback]) -> None:
    fired = await self._run_timer(
      task, lambda: self._task_tick(task, on_status), task.max_ticks, self.task_poll_interval_seconds
    )
    task.updated_at = time.time()
    logger.info('Status polling for task %s ended after %s ticks at %s', task.task_id, fired, task.status.value)

  async def _task_tick(self, task: MigrationTask, on_status: Optional[StatusCallback]) -> None:
    if self.tasks.get(task.task_id) is not task:
      return
    previous = task.status
    try:
      await self.poll_task_status(task.task_id)
    except (NoActivePlatform, UnsupportedResourceKind) as exc:
      logger.warning('Stopping status polling for task %s: %s', task.task_id, exc)
      self.stop_task_polling(task.task_id)
      return
    if on_status is not None and task.status is not previous:
      try:
        on_status(task)
      except Exception:
        logger.exception('Task status callback failed for %s', task.task_id)

  def stop_task_polling(self, task_id: str) -> Optional[MigrationTask]:
    task = self.tasks.get(task_id)
    if task is None:
      return None
    if task.poll_task is not None and not task.poll_task.done():
      task.poll_task.cancel()
    task.poll_task = None
    task.updated_at = time.time()
    return task

  def _stop_tasks(self) -> None:
    for task_id in list(self.tasks):
      self.stop_task_polling(task_id)

  def reset(self) -> None:
    self.stop_all()
    self._stop_tasks()
    self.jobs.clear()
    self.caches.clear()
    self.tasks.clear()
    self.active_scope = None

  async def close(self) -> None:
    self.stop_all()
    self._stop_tasks()
    if self._tick_tasks:
      await asyncio.gather(*self._tick_tasks, return_exceptions=True)

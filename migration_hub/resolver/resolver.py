from __future__ import annotations

import logging
from typing import Dict, List, Mapping, Optional

import httpx

from migration_hub.backends.client import BackendClient, error_detail
from migration_hub.backends.selector import BackendProfile
from migration_hub.errors import (
  AllCandidatesExhausted,
  MissingParameter,
  PrimaryFetchError,
  UnsupportedResourceKind
)
from migration_hub.resolver.endpoints import (
  PRIMARY_ENDPOINTS,
  PROBED_ENDPOINTS,
  EndpointTemplate,
  ResourceKind,
  is_probed
)
from migration_hub.resolver.envelope import Resource, normalize_envelope

logger = logging.getLogger(__name__)


class EndpointResolver:
  """Turns ``(kind, params)`` into a canonical list of resources.

  Primary listings hit exactly one endpoint and raise ``PrimaryFetchError``.
  Workbook- and dashboard-scoped lookups walk an ordered candidate list and
  stop at the first 2xx, even an empty one. When no candidate answers the
  lookup yields an empty list: an exhausted probe is indistinguishable from
  a resource with no children.
  """

  def __init__(self, backend: BackendClient, event_logger=None) -> None:
    self.backend = backend
    self._event_logger = event_logger

  async def fetch_resource(self, kind: ResourceKind, params: Optional[Mapping[str, object]] = None) -> List[Resource]:
    kind = ResourceKind(kind)
    profile, token = self.backend.active_profile()
    merged: Dict[str, object] = dict(profile.path_vars)
    merged.update({key: value for key, value in (params or {}).items() if value is not None})

    if not is_probed(kind):
      template = PRIMARY_ENDPOINTS.get(profile.platform, {}).get(kind)
      if template is None:
        raise UnsupportedResourceKind(f'{profile.platform.value} has no listing for {kind.value}')
      return await self._fetch_primary(profile, token, kind, template, merged)

    candidates = PROBED_ENDPOINTS.get(profile.platform, {}).get(kind)
    if not candidates:
      raise UnsupportedResourceKind(f'{profile.platform.value} has no lookup for {kind.value}')
    try:
      return await self._probe(profile, token, kind, candidates, merged)
    except AllCandidatesExhausted as exc:
      logger.warning('All candidates exhausted for %s, treating as empty: %s', kind.value, exc.last_error)
      if self._event_logger:
        self._event_logger.log_warning(
          'candidates_exhausted',
          {'kind': kind.value, 'params': {k: str(v) for k, v in merged.items()}, 'last_error': str(exc.last_error)}
        )
      return []

  async def _fetch_primary(
    self,
    profile: BackendProfile,
    token: Optional[str],
    kind: ResourceKind,
    template: EndpointTemplate,
    params: Mapping[str, object]
  ) -> List[Resource]:
    path, query = template.render(params)
    try:
      response = await self.backend.get(profile, token, path, query)
    except httpx.HTTPError as exc:
      raise PrimaryFetchError(f'Failed to fetch {kind.value}: {exc}') from exc
    if not response.is_success:
      detail = error_detail(response)
      raise PrimaryFetchError(
        f'Failed to fetch {kind.value}: HTTP {response.status_code} {detail}',
        status_code=response.status_code,
        detail=detail
      )
    try:
      body = response.json()
    except ValueError as exc:
      raise PrimaryFetchError(f'Invalid response body for {kind.value}', status_code=response.status_code) from exc
    resources = normalize_envelope(body, template.resource_name)
    logger.info('Fetched %s %s from %s', len(resources), kind.value, path)
    return resources

  async def _probe(
    self,
    profile: BackendProfile,
    token: Optional[str],
    kind: ResourceKind,
    candidates: List[EndpointTemplate],
    params: Mapping[str, object]
  ) -> List[Resource]:
    last_error: Optional[BaseException] = None
    for index, candidate in enumerate(candidates):
      try:
        path, query = candidate.render(params)
      except MissingParameter as exc:
        logger.debug('Skipping candidate %s for %s: %s', index, kind.value, exc)
        continue
      try:
        response = await self.backend.get(profile, token, path, query)
      except httpx.HTTPError as exc:
        logger.info('Candidate %s for %s failed: %s', path, kind.value, exc)
        last_error = exc
        continue
      if response.status_code == 404:
        logger.debug('Candidate %s for %s does not exist here', path, kind.value)
        continue
      if not response.is_success:
        logger.info('Candidate %s for %s answered HTTP %s', path, kind.value, response.status_code)
        last_error = PrimaryFetchError(
          f'HTTP {response.status_code} from {path}',
          status_code=response.status_code,
          detail=error_detail(response)
        )
        continue
      try:
        body = response.json()
      except ValueError as exc:
        last_error = exc
        continue
      resources = normalize_envelope(body, candidate.resource_name)
      logger.info('Resolved %s via %s (%s items)', kind.value, path, len(resources))
      return resources
    raise AllCandidatesExhausted(kind.value, last_error)

from __future__ import annotations

import string
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Mapping, Optional, Tuple
from urllib.parse import quote

from migration_hub.errors import MissingParameter
from migration_hub.session.models import PlatformIdentity


class ResourceKind(str, Enum):
  PROJECTS = 'projects'
  WORKBOOKS = 'workbooks'
  DATASOURCES = 'datasources'
  REPORTS = 'reports'
  METRICS = 'metrics'
  ATTRIBUTES = 'attributes'
  WORKBOOK_VIEWS = 'workbook_views'
  WORKBOOK_CALCULATIONS = 'workbook_calculations'
  WORKBOOK_DATASOURCES = 'workbook_datasources'
  DASHBOARD_CALCULATIONS = 'dashboard_calculations'


@dataclass(frozen=True)
class EndpointTemplate:
  path: str
  resource_name: Optional[str] = None
  query: Tuple[str, ...] = ()
  optional_query: bool = False

  @property
  def path_fields(self) -> Tuple[str, ...]:
    return tuple(name for _, name, _, _ in string.Formatter().parse(self.path) if name)

  def missing(self, params: Mapping[str, object]) -> List[str]:
    required = self.path_fields if self.optional_query else self.path_fields + self.query
    return [name for name in required if params.get(name) in (None, '')]

  def render(self, params: Mapping[str, object]) -> Tuple[str, Dict[str, str]]:
    missing = self.missing(params)
    if missing:
      raise MissingParameter(f'{self.path} needs {", ".join(missing)}')
    path = self.path.format(**{name: quote(str(params[name]), safe='') for name in self.path_fields})
    query = {name: str(params[name]) for name in self.query if params.get(name) not in (None, '')}
    return path, query


@dataclass(frozen=True)
class ConversionEndpoints:
  kickoff: str
  cached: str
  convert: str
  # name of the id list in the convert-now request body
  convert_ids_key: str = 'ids'


@dataclass(frozen=True)
class MigrationEndpoints:
  migrate: str
  task_status: str


PRIMARY_ENDPOINTS: Dict[PlatformIdentity, Dict[ResourceKind, EndpointTemplate]] = {
  PlatformIdentity.TABLEAU: {
    ResourceKind.PROJECTS: EndpointTemplate('/tableau/projects/{site}', 'projects'),
    ResourceKind.WORKBOOKS: EndpointTemplate(
      '/tableau/{site}/workbooks', 'workbooks', query=('project_id',), optional_query=True
    ),
    ResourceKind.DATASOURCES: EndpointTemplate(
      '/tableau/{site}/datasources', 'datasources', query=('project_id',), optional_query=True
    )
  },
  PlatformIdentity.MICROSTRATEGY: {
    ResourceKind.PROJECTS: EndpointTemplate('/api/projects', 'projects'),
    ResourceKind.WORKBOOKS: EndpointTemplate('/api/dossiers', 'dossiers', query=('project_id',)),
    ResourceKind.DATASOURCES: EndpointTemplate('/api/cubes', 'cubes', query=('project_id',)),
    ResourceKind.REPORTS: EndpointTemplate('/api/reports', 'reports', query=('project_id',)),
    ResourceKind.METRICS: EndpointTemplate('/api/metrics', 'metrics', query=('project_id',)),
    ResourceKind.ATTRIBUTES: EndpointTemplate('/api/attributes', 'attributes', query=('project_id',))
  }
}

# Most path-specific first, generic query-filtered listing last.
PROBED_ENDPOINTS: Dict[PlatformIdentity, Dict[ResourceKind, List[EndpointTemplate]]] = {
  PlatformIdentity.TABLEAU: {
    ResourceKind.WORKBOOK_VIEWS: [
      EndpointTemplate('/tableau/{site}/workbooks/{workbook_id}/views', 'views'),
      EndpointTemplate('/tableau/workbook/{workbook_id}/views', 'views'),
      EndpointTemplate('/tableau/workbooks/{workbook_id}/views', 'views'),
      EndpointTemplate('/tableau/{site}/views', 'views', query=('workbook_id',))
    ],
    ResourceKind.WORKBOOK_CALCULATIONS: [
      EndpointTemplate('/tableau/{site}/workbooks/{workbook_id}/calculations', 'calculations'),
      EndpointTemplate('/tableau/workbooks/{workbook_id}/calculations', 'calculations'),
      EndpointTemplate('/tableau/calculated-fields', 'calculated_fields', query=('workbook_name',)),
      EndpointTemplate('/calculations', 'calculations', query=('workbook_id',))
    ],
    ResourceKind.WORKBOOK_DATASOURCES: [
      EndpointTemplate('/tableau/{site}/workbooks/{workbook_id}/datasources', 'datasources'),
      EndpointTemplate('/tableau/{workbook_id}/datasources', 'datasources'),
      EndpointTemplate('/tableau/{site}/datasources', 'datasources', query=('workbook_id',))
    ],
    ResourceKind.DASHBOARD_CALCULATIONS: [
      EndpointTemplate('/dashboards/{dashboard_id}/calculations', 'calculations'),
      EndpointTemplate('/tableau/{site}/views/{dashboard_id}/calculations', 'calculations'),
      EndpointTemplate('/calculations', 'calculations', query=('dashboard_id',))
    ]
  },
  PlatformIdentity.MICROSTRATEGY: {
    ResourceKind.WORKBOOK_VIEWS: [
      EndpointTemplate('/api/dossiers/{workbook_id}/views', 'views'),
      EndpointTemplate('/api/dossiers/{workbook_id}/chapters', 'chapters'),
      EndpointTemplate('/api/views', 'views', query=('dossier_id',))
    ],
    ResourceKind.WORKBOOK_CALCULATIONS: [
      EndpointTemplate('/api/dossiers/{workbook_id}/metrics', 'metrics'),
      EndpointTemplate('/api/metrics', 'metrics', query=('dossier_id',))
    ],
    ResourceKind.WORKBOOK_DATASOURCES: [
      EndpointTemplate('/api/dossiers/{workbook_id}/cubes', 'cubes'),
      EndpointTemplate('/api/cubes', 'cubes', query=('dossier_id',))
    ]
  }
}

CONVERSION_ENDPOINTS: Dict[PlatformIdentity, ConversionEndpoints] = {
  PlatformIdentity.TABLEAU: ConversionEndpoints(
    kickoff='/conversions/{scope_id}/{kind}/background',
    cached='/conversions/{scope_id}/{kind}/cached',
    convert='/convert-to-dax',
    convert_ids_key='calculationIds'
  ),
  PlatformIdentity.MICROSTRATEGY: ConversionEndpoints(
    kickoff='/api/conversions/{scope_id}/{kind}/background',
    cached='/api/conversions/{scope_id}/{kind}/cached',
    convert='/api/conversions/{scope_id}/{kind}/convert'
  )
}

MIGRATION_ENDPOINTS: Dict[PlatformIdentity, MigrationEndpoints] = {
  PlatformIdentity.TABLEAU: MigrationEndpoints(
    migrate='/tableau/migrate_workbook',
    task_status='/tableau/model-creation-status/{task_id}'
  )
}


def is_probed(kind: ResourceKind) -> bool:
  return kind in PROBED_KINDS


PROBED_KINDS = frozenset({
  ResourceKind.WORKBOOK_VIEWS,
  ResourceKind.WORKBOOK_CALCULATIONS,
  ResourceKind.WORKBOOK_DATASOURCES,
  ResourceKind.DASHBOARD_CALCULATIONS
})


def owning_platform(kind: ResourceKind) -> Optional[PlatformIdentity]:
  """The only platform that serves ``kind``, or None when several do."""
  kind = ResourceKind(kind)
  owners = [
    platform for platform in PlatformIdentity
    if kind in PRIMARY_ENDPOINTS.get(platform, {}) or kind in PROBED_ENDPOINTS.get(platform, {})
  ]
  return owners[0] if len(owners) == 1 else None

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class ConversionKind(str, Enum):
  CALCULATIONS = 'calculations'
  METRICS = 'metrics'
  ATTRIBUTES = 'attributes'


class JobState(str, Enum):
  IDLE = 'idle'
  KICKOFF = 'kickoff'
  POLLING = 'polling'
  SETTLED = 'settled'


class TaskStatus(str, Enum):
  PENDING = 'pending'
  IN_PROGRESS = 'in_progress'
  COMPLETED = 'completed'
  FAILED = 'failed'

  @classmethod
  def parse(cls, value: Any) -> 'TaskStatus':
    try:
      return cls(str(value).lower())
    except ValueError:
      return cls.IN_PROGRESS


TERMINAL_STATUSES = frozenset({TaskStatus.COMPLETED, TaskStatus.FAILED})


# the source item id comes before the id of the conversion record itself
SOURCE_ID_FIELDS = ('source_id', 'calculation_id', 'id', 'name')
NAME_FIELDS = ('name', 'form_name')
SOURCE_EXPRESSION_FIELDS = ('source_expression', 'tableau_expression', 'formula', 'expression')
TARGET_EXPRESSION_FIELDS = ('target_expression', 'powerbi_expression', 'dax_formula', 'dax')


def _pick_field(payload: Dict[str, Any], names) -> Tuple[Optional[str], Optional[str]]:
  for name in names:
    value = payload.get(name)
    if value not in (None, ''):
      return name, str(value)
  return None, None


def _pick(payload: Dict[str, Any], names) -> Optional[str]:
  return _pick_field(payload, names)[1]


@dataclass
class ConvertedExpression:
  source_id: str
  name: str
  source_expression: str
  target_expression: str
  metadata: Dict[str, Any] = field(default_factory=dict)

  @classmethod
  def from_payload(cls, payload: Dict[str, Any]) -> Optional['ConvertedExpression']:
    id_field, source_id = _pick_field(payload, SOURCE_ID_FIELDS)
    if source_id is None:
      return None
    name_field, name = _pick_field(payload, NAME_FIELDS)
    source_expression = _pick(payload, SOURCE_EXPRESSION_FIELDS)
    target_expression = _pick(payload, TARGET_EXPRESSION_FIELDS)
    known = {id_field, name_field}.union(SOURCE_EXPRESSION_FIELDS, TARGET_EXPRESSION_FIELDS)
    metadata = {key: value for key, value in payload.items() if key not in known}
    # attribute forms arrive as a list of pairs; the first one is canonical
    forms = payload.get('expressions')
    if isinstance(forms, list) and forms and isinstance(forms[0], dict):
      source_expression = source_expression or _pick(forms[0], SOURCE_EXPRESSION_FIELDS)
      target_expression = target_expression or _pick(forms[0], TARGET_EXPRESSION_FIELDS)
    return cls(
      source_id=source_id,
      name=name or source_id,
      source_expression=source_expression or '',
      target_expression=target_expression or '',
      metadata=metadata
    )

  def to_dict(self) -> Dict[str, Any]:
    return {
      'source_id': self.source_id,
      'name': self.name,
      'source_expression': self.source_expression,
      'target_expression': self.target_expression,
      'metadata': self.metadata
    }


@dataclass
class ConversionJob:
  scope_id: str
  kind: ConversionKind
  state: JobState = JobState.IDLE
  ticks: int = 0
  skipped_ticks: int = 0
  failed_ticks: int = 0
  stable_ticks: int = 0
  last_count: int = 0
  in_flight: bool = False
  max_ticks: Optional[int] = None
  settle_after_stable_ticks: Optional[int] = None
  last_error: Optional[str] = None
  started_at: Optional[float] = None
  updated_at: float = field(default_factory=time.time)
  poll_task: Optional[asyncio.Task] = None

  @property
  def polling(self) -> bool:
    return self.poll_task is not None and not self.poll_task.done()

  def stable_enough(self) -> bool:
    if not self.settle_after_stable_ticks:
      return False
    return self.stable_ticks >= self.settle_after_stable_ticks

  def finished(self) -> bool:
    return self.stable_enough()

  def summary(self) -> Dict[str, Any]:
    return {
      'scope_id': self.scope_id,
      'kind': self.kind.value,
      'state': self.state.value,
      'ticks': self.ticks,
      'skipped_ticks': self.skipped_ticks,
      'failed_ticks': self.failed_ticks,
      'item_count': self.last_count,
      'polling': self.polling,
      'max_ticks': self.max_ticks,
      'last_error': self.last_error,
      'started_at': self.started_at,
      'updated_at': self.updated_at
    }


@dataclass
class MigrationTask:
  """Server-side model creation started by a workbook migration.

  Unlike a conversion job the backend reports a terminal status, so the
  poll loop stops on its own once the task completes or fails.
  """

  task_id: str
  workbook_name: str
  workspace: Optional[str] = None
  status: TaskStatus = TaskStatus.PENDING
  ticks: int = 0
  skipped_ticks: int = 0
  failed_ticks: int = 0
  in_flight: bool = False
  max_ticks: Optional[int] = None
  error: Optional[str] = None
  last_error: Optional[str] = None
  result: Dict[str, Any] = field(default_factory=dict)
  started_at: float = field(default_factory=time.time)
  updated_at: float = field(default_factory=time.time)
  poll_task: Optional[asyncio.Task] = None

  @property
  def polling(self) -> bool:
    return self.poll_task is not None and not self.poll_task.done()

  @property
  def terminal(self) -> bool:
    return self.status in TERMINAL_STATUSES

  def finished(self) -> bool:
    return self.terminal

  def summary(self) -> Dict[str, Any]:
    return {
      'task_id': self.task_id,
      'workbook_name': self.workbook_name,
      'workspace': self.workspace,
      'status': self.status.value,
      'terminal': self.terminal,
      'ticks': self.ticks,
      'skipped_ticks': self.skipped_ticks,
      'failed_ticks': self.failed_ticks,
      'polling': self.polling,
      'error': self.error,
      'last_error': self.last_error,
      'started_at': self.started_at,
      'updated_at': self.updated_at
    }

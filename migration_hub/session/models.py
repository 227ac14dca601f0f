from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Tuple


class PlatformIdentity(str, Enum):
  NONE = 'none'
  TABLEAU = 'tableau'
  MICROSTRATEGY = 'microstrategy'

  @classmethod
  def parse(cls, value: Any) -> 'PlatformIdentity':
    if isinstance(value, cls):
      return value
    try:
      return cls(str(value).lower())
    except ValueError:
      return cls.NONE


class SelectionLevel(str, Enum):
  PROJECT = 'project'
  WORKBOOK = 'workbook'
  DASHBOARD = 'dashboard'

  @property
  def deeper(self) -> Tuple['SelectionLevel', ...]:
    order = SELECTION_ORDER
    return tuple(order[order.index(self) + 1:])


SELECTION_ORDER = [
  SelectionLevel.PROJECT,
  SelectionLevel.WORKBOOK,
  SelectionLevel.DASHBOARD
]


@dataclass
class Entity:
  """A selected project, workbook or dashboard plus the ids of its parents."""

  id: str
  name: str
  parent_ids: Dict[str, str] = field(default_factory=dict)
  extra: Dict[str, Any] = field(default_factory=dict)

  def to_dict(self) -> Dict[str, Any]:
    return {
      'id': self.id,
      'name': self.name,
      'parent_ids': dict(self.parent_ids),
      'extra': dict(self.extra)
    }

  @classmethod
  def from_dict(cls, payload: Dict[str, Any]) -> 'Entity':
    return cls(
      id=str(payload['id']),
      name=str(payload.get('name', '')),
      parent_ids={str(k): str(v) for k, v in (payload.get('parent_ids') or {}).items()},
      extra=dict(payload.get('extra') or {})
    )


@dataclass(frozen=True)
class SessionSnapshot:
  platform: PlatformIdentity
  principal_id: str
  auth_token: str
  authenticated: bool = True

  def to_dict(self) -> Dict[str, Any]:
    return {
      'platform': self.platform.value,
      'principal_id': self.principal_id,
      'authenticated': self.authenticated
    }

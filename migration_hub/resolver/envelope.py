from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

ID_FIELDS = ('id', 'luid', 'workbook_id', 'name')
NAME_FIELDS = ('name', 'workbook_name', 'title')


@dataclass
class Resource:
  id: str
  name: str
  attributes: Dict[str, Any] = field(default_factory=dict)

  @classmethod
  def from_payload(cls, item: Any) -> 'Resource':
    if not isinstance(item, dict):
      return cls(id=str(item), name=str(item))
    identifier = next((item[key] for key in ID_FIELDS if item.get(key) not in (None, '')), '')
    name = next((item[key] for key in NAME_FIELDS if item.get(key) not in (None, '')), identifier)
    return cls(id=str(identifier), name=str(name), attributes=dict(item))

  def as_dict(self) -> Dict[str, Any]:
    payload = dict(self.attributes)
    payload['id'] = self.id
    payload['name'] = self.name
    return payload


def extract_items(body: Any, resource_name: Optional[str]) -> List[Any]:
  """Pull the item list out of whichever envelope the backend answered with.

  Tried in order: bare list, ``data`` list, ``<resource_name>`` list,
  ``<resource_name>.<resource_name>`` list. Anything else means no items.
  """
  if isinstance(body, list):
    return body
  if not isinstance(body, dict):
    return []
  data = body.get('data')
  if isinstance(data, list):
    return data
  if not resource_name:
    return []
  named = body.get(resource_name)
  if isinstance(named, list):
    return named
  if isinstance(named, dict) and isinstance(named.get(resource_name), list):
    return named[resource_name]
  return []


def normalize_envelope(body: Any, resource_name: Optional[str]) -> List[Resource]:
  return [Resource.from_payload(item) for item in extract_items(body, resource_name)]

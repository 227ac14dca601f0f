from __future__ import annotations

from typing import Dict, Iterable, List

from migration_hub.conversion.models import ConversionKind, ConvertedExpression


class ConversionCache:
  """Converted expressions of one scope and kind, keyed by source item id.

  Append-only: an id already present is never replaced.
  """

  def __init__(self, scope_id: str, kind: ConversionKind) -> None:
    self.scope_id = scope_id
    self.kind = kind
    self._entries: Dict[str, ConvertedExpression] = {}

  def __contains__(self, source_id: object) -> bool:
    return source_id in self._entries

  def __len__(self) -> int:
    return len(self._entries)

  def missing(self, source_ids: Iterable[str]) -> List[str]:
    pending: List[str] = []
    for source_id in source_ids:
      source_id = str(source_id)
      if source_id not in self._entries and source_id not in pending:
        pending.append(source_id)
    return pending

  def merge(self, items: Iterable[ConvertedExpression]) -> List[ConvertedExpression]:
    added: List[ConvertedExpression] = []
    for item in items:
      if item.source_id in self._entries:
        continue
      self._entries[item.source_id] = item
      added.append(item)
    return added

  def snapshot(self) -> List[ConvertedExpression]:
    return list(self._entries.values())

  def clear(self) -> None:
    self._entries.clear()

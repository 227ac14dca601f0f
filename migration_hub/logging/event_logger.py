from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class EventLogger:
  """Append-only JSONL record of failures the layer absorbed instead of raising."""

  def __init__(self, base_dir: Path) -> None:
    self.base_dir = Path(base_dir)
    self.base_dir.mkdir(parents=True, exist_ok=True)
    self.log_file = self.base_dir / 'events.log'

  def log_event(self, category: str, message: str, payload: Optional[Dict[str, Any]] = None) -> None:
    entry = {
      'timestamp': datetime.now(timezone.utc).isoformat(),
      'category': category,
      'message': message,
      'payload': payload or {}
    }
    try:
      with self.log_file.open('a', encoding='utf-8') as handle:
        handle.write(json.dumps(entry, default=str) + '\n')
    except OSError as exc:
      logger.warning('Could not append to event log %s: %s', self.log_file, exc)

  def log_warning(self, message: str, payload: Optional[Dict[str, Any]] = None) -> None:
    self.log_event('warning', message, payload)

  def log_error(self, message: str, payload: Optional[Dict[str, Any]] = None) -> None:
    self.log_event('error', message, payload)

  def recent(self, limit: int = 200, category: Optional[str] = None) -> List[Dict[str, Any]]:
    if not self.log_file.exists():
      return []
    entries = []
    for line in self.log_file.read_text(encoding='utf-8').splitlines():
      try:
        entry = json.loads(line)
      except json.JSONDecodeError:
        logger.warning('Malformed log line: %s', line)
        continue
      if category and entry.get('category') != category:
        continue
      entries.append(entry)
    return entries[-limit:]

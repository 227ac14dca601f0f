from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


def _optional_float(name: str) -> Optional[float]:
  raw = os.getenv(name)
  if raw is None or raw.strip() == '':
    return None
  return float(raw)


@dataclass
class Settings:
  """Global hub configuration derived from environment variables."""

  backend_host: str = os.getenv('HUB_HOST', '127.0.0.1')
  backend_port: int = int(os.getenv('HUB_PORT', '6120'))
  log_level: str = os.getenv('HUB_LOG_LEVEL', 'info')
  data_dir: Path = Path(os.getenv('HUB_DATA_DIR', './data')).resolve()
  session_db_path: Path = Path(os.getenv('HUB_SESSION_DB', './data/session.db')).resolve()
  tableau_base_url: str = os.getenv('HUB_TABLEAU_URL', 'http://localhost:8001')
  tableau_site_name: str = os.getenv('HUB_TABLEAU_SITE', 'datafactztableau')
  microstrategy_base_url: str = os.getenv('HUB_MSTR_URL', 'http://localhost:8000')
  # None leaves the transport's own timeout in charge
  request_timeout_seconds: Optional[float] = _optional_float('HUB_REQUEST_TIMEOUT')
  poll_interval_seconds: float = float(os.getenv('HUB_POLL_INTERVAL', '2.0'))
  poll_max_ticks: int = int(os.getenv('HUB_POLL_MAX_TICKS', '150'))
  task_poll_interval_seconds: float = float(os.getenv('HUB_TASK_POLL_INTERVAL', '3.0'))

  def ensure_directories(self) -> None:
    self.data_dir.mkdir(parents=True, exist_ok=True)
    if not self.session_db_path.parent.exists():
      self.session_db_path.parent.mkdir(parents=True, exist_ok=True)


settings = Settings()

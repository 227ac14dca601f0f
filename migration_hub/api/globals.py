from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from migration_hub.backends.client import BackendClient
from migration_hub.config import Settings, settings
from migration_hub.conversion.orchestrator import ConversionOrchestrator
from migration_hub.logging.event_logger import EventLogger
from migration_hub.resolver.resolver import EndpointResolver
from migration_hub.session.auth import Authenticator
from migration_hub.session.context_store import SessionContextStore, open_session_store


@dataclass
class HubServices:
  config: Settings
  event_logger: EventLogger
  session_store: SessionContextStore
  backend: BackendClient
  resolver: EndpointResolver
  authenticator: Authenticator
  orchestrator: ConversionOrchestrator

  async def close(self) -> None:
    await self.orchestrator.close()
    await self.backend.aclose()


def build_services(config: Settings, backend: Optional[BackendClient] = None) -> HubServices:
  config.ensure_directories()
  event_logger = EventLogger(config.data_dir / 'logs')
  if backend is None:
    session_store = open_session_store(config.session_db_path, event_logger=event_logger)
    backend = BackendClient(session_store, config=config)
  return HubServices(
    config=config,
    event_logger=event_logger,
    session_store=backend.session_store,
    backend=backend,
    resolver=EndpointResolver(backend, event_logger=event_logger),
    authenticator=Authenticator(backend),
    orchestrator=ConversionOrchestrator(backend, event_logger=event_logger)
  )


services = build_services(settings)


def get_services() -> HubServices:
  return services

import argparse
import os
import uvicorn
from migration_hub.config import settings

# option name -> (Settings field, env var read by reloaded workers)
HUB_OPTIONS = {
  'tableau_url': ('tableau_base_url', 'HUB_TABLEAU_URL'),
  'tableau_site': ('tableau_site_name', 'HUB_TABLEAU_SITE'),
  'mstr_url': ('microstrategy_base_url', 'HUB_MSTR_URL'),
  'poll_interval': ('poll_interval_seconds', 'HUB_POLL_INTERVAL'),
  'poll_max_ticks': ('poll_max_ticks', 'HUB_POLL_MAX_TICKS'),
  'task_poll_interval': ('task_poll_interval_seconds', 'HUB_TASK_POLL_INTERVAL'),
  'session_db': ('session_db_path', 'HUB_SESSION_DB')
}

def parse_args() -> argparse.Namespace:
  parser = argparse.ArgumentParser(description='Session, resource resolution and conversion polling hub for the BI migration dashboard.')
  parser.add_argument('--host', default=settings.backend_host, help='Host interface to bind.')
  parser.add_argument('--port', default=settings.backend_port, type=int, help='Port to serve on.')
  parser.add_argument('--reload', action='store_true', help='Enable autoreload (development only).')
  parser.add_argument('--log-level', default=settings.log_level, help='Uvicorn log level.')
  backends = parser.add_argument_group('backends')
  backends.add_argument('--tableau-url', default=settings.tableau_base_url, help='Base address of the Tableau backend.')
  backends.add_argument('--tableau-site', default=settings.tableau_site_name, help='Tableau site name used in listing paths.')
  backends.add_argument('--mstr-url', default=settings.microstrategy_base_url, help='Base address of the MicroStrategy backend.')
  polling = parser.add_argument_group('polling')
  polling.add_argument('--poll-interval', default=settings.poll_interval_seconds, type=float,
                       help='Seconds between cached-result reads of a conversion job.')
  polling.add_argument('--poll-max-ticks', default=settings.poll_max_ticks, type=int,
                       help='Intervals after which a poll loop settles on its own.')
  polling.add_argument('--task-poll-interval', default=settings.task_poll_interval_seconds, type=float,
                       help='Seconds between model creation status checks.')
  parser.add_argument('--session-db', default=str(settings.session_db_path), help='SQLite file holding the session context.')
  return parser.parse_args()

def apply_overrides(args: argparse.Namespace) -> None:
  for option, (field_name, env_var) in HUB_OPTIONS.items():
    value = getattr(args, option)
    current = getattr(settings, field_name)
    setattr(settings, field_name, type(current)(value))
    os.environ[env_var] = str(value)

def main() -> None:
  args = parse_args()
  apply_overrides(args)
  uvicorn.run(
    'migration_hub.api.app:app',
    host=args.host,
    port=args.port,
    log_level=args.log_level,
    reload=args.reload
  )

if __name__ == '__main__':
  main()

from typing import Any, Dict, List, Optional

from fastapi import HTTPException

from migration_hub.conversion.models import ConversionJob, ConvertedExpression
from migration_hub.guard.route_guard import RedirectTo, guard_route
from migration_hub.session.context_store import SessionContextStore
from migration_hub.session.models import PlatformIdentity


def enforce_guard(
  session_store: SessionContextStore,
  location: str,
  required_platform: Optional[PlatformIdentity] = None
) -> PlatformIdentity:
  decision = guard_route(session_store, location, required_platform)
  if isinstance(decision, RedirectTo):
    raise HTTPException(status_code=401, detail=decision.as_dict())
  return decision.platform

def serialize_job(job: Optional[ConversionJob], items: List[ConvertedExpression]) -> Dict[str, Any]:
  return {
    'job': job.summary() if job else None,
    'item_count': len(items),
    'items': [item.to_dict() for item in items]
  }

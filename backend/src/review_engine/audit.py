"""
Append-only audit trail for administrative actions.
"""
import uuid
from typing import Dict, Any, Optional

from .logging import logger
from .store import get_store
from .utils import utc_now, to_iso


def write_audit_log(
    actor: str,
    action: str,
    resource_type: str,
    resource_id: str,
    changes: Dict[str, Any],
    store=None,
    now=None
) -> Dict[str, Any]:
    """Insert one audit entry. Entries are never updated or deleted."""
    store = store or get_store()
    entry = {
        'auditId': str(uuid.uuid4()),
        'actor': actor,
        'action': action,
        'resourceType': resource_type,
        'resourceId': resource_id,
        'changes': changes,
        'timestamp': to_iso(now or utc_now()),
    }
    store.put_audit_log(entry)
    logger.info(f"Audit: {actor} {action} {resource_type}/{resource_id}")
    return entry


def before_after(before: Optional[Dict[str, Any]], after: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    return {'before': before or {}, 'after': after or {}}

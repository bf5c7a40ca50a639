"""
Caller identity from the Cognito authorizer claims of API Gateway events.

Reviewers are plain authenticated users; admin endpoints additionally
require membership of the ADMIN_GROUP Cognito group.
"""
from typing import List, Optional

from .config import config


def _claims(event: dict) -> dict:
    try:
        return event['requestContext']['authorizer']['claims'] or {}
    except (KeyError, TypeError):
        return {}


def get_user_sub(event: dict) -> Optional[str]:
    """Cognito sub of the caller, or None for an unauthenticated request."""
    return _claims(event).get('sub') or None


def get_user_groups(event: dict) -> List[str]:
    """
    Cognito groups of the caller. API Gateway passes them either as a list or
    as a string, comma separated ("admin,reviewer") or bracketed ("[admin reviewer]").
    """
    groups = _claims(event).get('cognito:groups') or []
    if isinstance(groups, str):
        groups = groups.strip('[]').replace(',', ' ').split()
    return [g for g in groups if g]


def is_admin(event: dict) -> bool:
    return config.ADMIN_GROUP in get_user_groups(event)

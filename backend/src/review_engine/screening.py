"""
Read-only access to AI screening results, the ground truth for control items.
"""
from typing import Optional

from .logging import logger
from .models import ScreeningStatus
from .store import get_store


def get_ai_decision(submission_id: str, store=None) -> Optional[str]:
    """
    Latest AI screening status for a submission.

    Returns:
        'PASSED', 'FAILED', or None when there is no usable screening
    """
    store = store or get_store()
    screening = store.get_ai_screening(submission_id)
    if not screening:
        return None

    status = screening.get('status')
    if status not in (ScreeningStatus.PASSED, ScreeningStatus.FAILED):
        logger.warning(f"Unexpected screening status {status!r} for submission {submission_id}")
        return None
    return status

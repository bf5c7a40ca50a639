"""
Submission and reviewer eligibility for a contest's peer-review round.
"""
from typing import Dict, List, Any

from .errors import NotFound
from .logging import logger
from .models import SubmissionStatus
from .store import get_store


def resolve_eligibility(contest_id: str, store=None) -> Dict[str, List[Any]]:
    """
    Eligible submissions are those in SUBMITTED or REINSTATED status.
    Eligible reviewers are the distinct, non-banned owners of those submissions,
    in ascending submission-id order of first appearance.

    Returns:
        {'submissions': [...], 'reviewers': [userId, ...]}; empty lists are not an error
    """
    store = store or get_store()

    if not store.get_contest(contest_id):
        raise NotFound('Contest not found')

    submissions = store.list_contest_submissions(contest_id, SubmissionStatus.ELIGIBLE)

    reviewers = []
    seen = set()
    for submission in submissions:
        user_id = submission.get('userId')
        if not user_id or user_id in seen:
            continue
        seen.add(user_id)
        user = store.get_user(user_id)
        if user and user.get('isBanned'):
            logger.info(f"Skipping banned reviewer {user_id}")
            continue
        reviewers.append(user_id)

    logger.info(
        f"Contest {contest_id}: {len(submissions)} eligible submissions, "
        f"{len(reviewers)} eligible reviewers"
    )
    return {'submissions': submissions, 'reviewers': reviewers}

"""
Peer-verification rounds for submissions appealing an AI elimination.

Each selected reviewer gets the contested submission plus up to two control
items whose ground truth is known: one the AI passed (SUBMITTED) and one the
AI eliminated with the author's acceptance (ELIMINATED_ACCEPTED). The three
are shuffled so the contested item cannot be told apart.
"""
import random
from collections import defaultdict
from typing import Dict, Any, List, Optional

from .assignment import build_assignment
from .config import config
from .errors import NotFound, Conflict
from .logging import logger
from .models import ReviewMode, SubmissionStatus
from .notifications import notify_assigned
from .store import get_store
from .utils import utc_now, to_iso, compute_deadline

# Owners of these submissions may review verification requests
REVIEWER_SOURCE_STATUSES = (SubmissionStatus.SUBMITTED, SubmissionStatus.ELIMINATED)


def eligible_verification_reviewers(contest_id: str, author_id: str, store) -> List[str]:
    """Distinct, non-banned owners of SUBMITTED/ELIMINATED submissions, excluding the author."""
    reviewers = []
    for submission in store.list_contest_submissions(contest_id, REVIEWER_SOURCE_STATUSES):
        user_id = submission.get('userId')
        if not user_id or user_id == author_id or user_id in reviewers:
            continue
        user = store.get_user(user_id)
        if not user or user.get('isBanned'):
            continue
        reviewers.append(user_id)
    return reviewers


def pick_control(candidates: List[Dict[str, Any]], reviewer_id: str, rng: random.Random) -> Optional[Dict[str, Any]]:
    options = [s for s in candidates if s.get('userId') != reviewer_id]
    return rng.choice(options) if options else None


def create_verification_round(
    submission_id: str,
    reviewer_count: Optional[int] = None,
    deadline_days: Optional[int] = None,
    store=None,
    now=None,
    rng: Optional[random.Random] = None
) -> Dict[str, Any]:
    """
    Assign a PEER_VERIFICATION_PENDING submission to randomly selected reviewers.
    The round id is the contested submission id.

    Raises:
        NotFound: submission missing
        Conflict: submission not pending verification, or the round already exists
    """
    store = store or get_store()
    now = now or utc_now()
    rng = rng or random.Random()
    reviewer_count = reviewer_count or config.VERIFICATION_REVIEWER_COUNT

    submission = store.get_submission(submission_id)
    if not submission:
        raise NotFound('Submission not found')
    if submission.get('status') != SubmissionStatus.PEER_VERIFICATION_PENDING:
        raise Conflict(
            f"Submission status is {submission.get('status')}, expected PEER_VERIFICATION_PENDING"
        )
    if store.list_assignments_by_round(submission_id):
        raise Conflict('Verification round already exists for this submission')

    contest_id = submission.get('contestId')
    author_id = submission.get('userId')

    result = {
        'success': False,
        'reviewerCount': 0,
        'totalAssignments': 0,
        'warnings': [],
        'errors': [],
    }

    eligible = eligible_verification_reviewers(contest_id, author_id, store)
    logger.info(f"Found {len(eligible)} eligible verification reviewers for {submission_id}")
    if not eligible:
        result['errors'].append('No eligible reviewers found')
        return result

    selected = rng.sample(eligible, min(reviewer_count, len(eligible)))
    if len(selected) < reviewer_count:
        msg = f"Only {len(selected)} reviewers available (target: {reviewer_count})"
        logger.warning(msg)
        result['warnings'].append(msg)

    passed = store.list_contest_submissions(contest_id, [SubmissionStatus.SUBMITTED])
    eliminated = store.list_contest_submissions(contest_id, [SubmissionStatus.ELIMINATED_ACCEPTED])

    deadline = compute_deadline(deadline_days or config.DEADLINE_DAYS, now)
    assignments = []
    counts = defaultdict(int)

    for reviewer_id in selected:
        items = [submission]
        for pool in (passed, eliminated):
            control = pick_control(pool, reviewer_id, rng)
            if control:
                items.append(control)
        if len(items) < 3:
            result['warnings'].append(f"Reviewer {reviewer_id} received {len(items) - 1} control item(s)")
        rng.shuffle(items)

        for item in items:
            assignments.append(build_assignment(
                item['submissionId'], reviewer_id, submission_id, ReviewMode.DECISION, deadline, now
            ))
            counts[reviewer_id] += 1

    store.put_assignments(assignments)
    logger.info(
        f"Created verification round {submission_id}: {len(selected)} reviewers, "
        f"{len(assignments)} assignments"
    )

    notify_assigned(dict(counts), to_iso(deadline), submission_id)

    result.update({
        'success': True,
        'reviewerCount': len(selected),
        'totalAssignments': len(assignments),
        'deadline': to_iso(deadline),
    })
    return result

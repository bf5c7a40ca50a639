"""
Peer-review assignment: balances a fixed review quota per reviewer across
the eligible submissions of a contest.

Algorithm (greedy streaming load-balance):
- Reviewers are processed in input order.
- For each reviewer, the submissions they do not own are sorted by
  (reviews assigned so far, submissionId) and the first `quota` are taken.
This approximates minimal variance in per-submission review counts without
a global optimisation.
"""
import uuid
from collections import defaultdict
from datetime import datetime
from typing import List, Dict, Any, Optional, Tuple

from .config import config
from .eligibility import resolve_eligibility
from .errors import Conflict
from .logging import logger
from .models import AssignmentStatus, ReviewMode
from .notifications import notify_assigned
from .store import get_store
from .utils import utc_now, to_iso, compute_deadline


def build_assignment(
    submission_id: str,
    reviewer_id: str,
    round_id: str,
    mode: str,
    deadline: datetime,
    now: datetime
) -> Dict[str, Any]:
    return {
        'assignmentId': str(uuid.uuid4()),
        'submissionId': submission_id,
        'reviewerUserId': reviewer_id,
        'roundId': round_id,
        'mode': mode,
        'status': AssignmentStatus.PENDING,
        'assignedAt': to_iso(now),
        'deadline': to_iso(deadline),
    }


def balance_assignments(
    reviewers: List[str],
    submissions: List[Dict[str, Any]],
    quota: int,
    deadline: datetime,
    round_id: str,
    mode: str = ReviewMode.CRITERIA,
    now: Optional[datetime] = None
) -> Tuple[List[Dict[str, Any]], List[str]]:
    """
    Distribute up to `quota` submissions to each reviewer, never their own.

    Returns:
        (assignments, warnings) where warnings name reviewers that got fewer than quota
    """
    now = now or utc_now()
    review_counts = {s['submissionId']: 0 for s in submissions}
    assignments = []
    warnings = []

    for reviewer_id in reviewers:
        available = [s for s in submissions if s.get('userId') != reviewer_id]
        if not available:
            msg = f"Reviewer {reviewer_id} has no available submissions to review"
            logger.warning(msg)
            warnings.append(msg)
            continue

        available.sort(key=lambda s: (review_counts[s['submissionId']], s['submissionId']))
        to_assign = available[:quota]

        for submission in to_assign:
            assignments.append(build_assignment(
                submission['submissionId'], reviewer_id, round_id, mode, deadline, now
            ))
            review_counts[submission['submissionId']] += 1

        if len(to_assign) < quota:
            msg = f"Reviewer {reviewer_id} only assigned {len(to_assign)} reviews (target: {quota})"
            logger.warning(msg)
            warnings.append(msg)

    log_distribution(review_counts)
    return assignments, warnings


def distribution_stats(review_counts: Dict[str, int]) -> Dict[str, float]:
    counts = list(review_counts.values())
    if not counts:
        return {'min': 0, 'max': 0, 'avg': 0.0, 'spread': 0}
    return {
        'min': min(counts),
        'max': max(counts),
        'avg': sum(counts) / len(counts),
        'spread': max(counts) - min(counts),
    }


def log_distribution(review_counts: Dict[str, int]) -> None:
    stats = distribution_stats(review_counts)
    logger.info(
        f"Assignment distribution: min={stats['min']} max={stats['max']} "
        f"avg={stats['avg']:.2f} spread={stats['spread']}"
    )


def round_settings(contest: Dict[str, Any]) -> Dict[str, int]:
    """Per-contest peerReviewConfig values, falling back to the global config."""
    overrides = contest.get('peerReviewConfig') or {}
    return {
        'reviewsPerReviewer': int(overrides.get('reviewsPerReviewer') or config.REVIEWS_PER_REVIEWER),
        'deadlineDays': int(overrides.get('deadlineDays') or config.DEADLINE_DAYS),
        'finalistCount': int(overrides.get('finalistCount') or config.FINALIST_COUNT),
    }


def create_peer_review_assignments(
    contest_id: str,
    quota: Optional[int] = None,
    deadline_days: Optional[int] = None,
    store=None,
    now: Optional[datetime] = None
) -> Dict[str, Any]:
    """
    Create the peer-review round of a contest.

    The round id is the contest id, and a round is created at most once.
    Notification failures are logged and never undo the persisted batch.

    Raises:
        NotFound: unknown contest
        Conflict: the round already has assignments
        Internal: the batch could not be persisted
    """
    store = store or get_store()
    now = now or utc_now()

    logger.info(f"Starting peer review assignment for contest {contest_id}")
    eligibility = resolve_eligibility(contest_id, store=store)
    submissions = eligibility['submissions']
    reviewers = eligibility['reviewers']

    settings = round_settings(store.get_contest(contest_id) or {})
    quota = quota or settings['reviewsPerReviewer']
    deadline_days = deadline_days or settings['deadlineDays']

    result = {
        'success': False,
        'totalAssignments': 0,
        'reviewerCount': len(reviewers),
        'submissionCount': len(submissions),
        'averageReviewsPerSubmission': 0.0,
        'warnings': [],
        'errors': [],
    }

    if not submissions:
        result['errors'].append('No eligible submissions found')
        return result
    if not reviewers:
        result['errors'].append('No eligible reviewers found')
        return result

    if store.list_assignments_by_round(contest_id):
        raise Conflict('Peer review assignments already exist for this contest')

    deadline = compute_deadline(deadline_days, now)
    assignments, warnings = balance_assignments(
        reviewers, submissions, quota, deadline, contest_id, ReviewMode.CRITERIA, now
    )

    store.put_assignments(assignments)
    logger.info(f"Created {len(assignments)} assignments for contest {contest_id}")

    reviewer_counts = defaultdict(int)
    for a in assignments:
        reviewer_counts[a['reviewerUserId']] += 1
    notify_assigned(dict(reviewer_counts), to_iso(deadline), contest_id)

    result.update({
        'success': True,
        'totalAssignments': len(assignments),
        'averageReviewsPerSubmission': round(len(assignments) / len(submissions), 2),
        'deadline': to_iso(deadline),
        'warnings': warnings,
    })
    return result

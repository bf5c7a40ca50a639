"""
Scheduled deadline sweeps: expiring overdue assignments, warning reviewers
whose deadline is about a day away, handing expired work to someone else
and closing verification rounds that stalled without enough votes.
"""
import random
from collections import Counter, defaultdict
from datetime import timedelta
from typing import Dict, Any, List, Optional, Set

from .assignment import build_assignment, round_settings
from .config import config
from .eligibility import resolve_eligibility
from .logging import logger
from .models import AssignmentStatus, ContestPhase, ReviewMode, SubmissionStatus, VerdictDecision
from .notifications import notify_assigned, notify_deadline_warning, notify_verdict
from .store import get_store
from .utils import utc_now, to_iso, parse_iso, compute_deadline
from .verification import eligible_verification_reviewers


def expire_overdue_assignments(store=None, now=None) -> Dict[str, Any]:
    """
    Flip every PENDING assignment past its deadline to EXPIRED.
    Each flip is conditional, so an assignment completed concurrently stays DONE.
    """
    store = store or get_store()
    now = now or utc_now()
    timestamp = to_iso(now)

    overdue = store.list_pending_assignments(deadline_before=timestamp)
    logger.info(f"Found {len(overdue)} overdue assignments")

    expired = 0
    errors = []
    for assignment in overdue:
        assignment_id = assignment['assignmentId']
        try:
            if store.expire_assignment(assignment_id, timestamp):
                expired += 1
                logger.info(
                    f"Expired assignment {assignment_id} "
                    f"(reviewer: {assignment.get('reviewerUserId')}, deadline: {assignment.get('deadline')})"
                )
        except Exception as e:
            logger.error(f"Error expiring assignment {assignment_id}: {e}")
            errors.append(f"{assignment_id}: {e}")

    return {'checked': len(overdue), 'expired': expired, 'errors': errors}


def send_deadline_warnings(store=None, now=None) -> Dict[str, Any]:
    """
    Warn reviewers with PENDING assignments due in the hour-wide window ending
    DEADLINE_WARNING_HOURS from now. Run hourly, each assignment is warned once.
    """
    store = store or get_store()
    now = now or utc_now()

    window_end = now + timedelta(hours=config.DEADLINE_WARNING_HOURS)
    window_start = window_end - timedelta(hours=1)

    due = store.list_pending_assignments(
        deadline_before=to_iso(window_end),
        deadline_from=to_iso(window_start)
    )

    by_reviewer = {}
    for assignment in due:
        entry = by_reviewer.setdefault(assignment['reviewerUserId'], {'ids': [], 'deadline': assignment['deadline']})
        entry['ids'].append(assignment['assignmentId'])
        entry['deadline'] = min(entry['deadline'], assignment['deadline'])

    sent = 0
    errors = []
    for reviewer_id, entry in sorted(by_reviewer.items()):
        if notify_deadline_warning(reviewer_id, entry['ids'], entry['deadline']):
            sent += 1
        else:
            errors.append(f"Warning not queued for {reviewer_id}")

    logger.info(f"Deadline warnings: {sent} sent, {len(errors)} failed, {len(due)} assignments due")
    return {'sent': sent, 'assignmentsDue': len(due), 'errors': errors}


# =============================================================================
# Expired-assignment reassignment
# =============================================================================

def frequent_expirers(expired: List[Dict[str, Any]], now) -> Set[str]:
    """Reviewers with REASSIGN_MAX_RECENT_EXPIRED or more expirations inside the lookback window."""
    cutoff = to_iso(now - timedelta(days=config.REASSIGN_LOOKBACK_DAYS))
    counts = Counter(
        a['reviewerUserId'] for a in expired
        if (a.get('expiredAt') or a.get('deadline') or '') >= cutoff
    )
    return {rid for rid, n in counts.items() if n >= config.REASSIGN_MAX_RECENT_EXPIRED}


def replacement_pool(assignment: Dict[str, Any], store) -> Optional[Dict[str, Any]]:
    """
    Reviewer pool and round context for an expired assignment, or None when
    its round is no longer open.
    """
    round_id = assignment.get('roundId')
    submission = store.get_submission(assignment['submissionId'])
    if not round_id or not submission:
        return None
    excluded = {submission.get('userId')}

    if assignment.get('mode') == ReviewMode.DECISION:
        contested = store.get_submission(round_id)
        if not contested or contested.get('status') != SubmissionStatus.PEER_VERIFICATION_PENDING:
            return None
        contest_id = contested.get('contestId')
        excluded.add(contested.get('userId'))
        pool = eligible_verification_reviewers(contest_id, contested.get('userId'), store)
        holders = store.list_assignments_by_round(round_id)
    else:
        contest = store.get_contest(round_id)
        if not contest or contest.get('phase') != ContestPhase.PEER_REVIEW:
            return None
        contest_id = round_id
        pool = resolve_eligibility(contest_id, store)['reviewers']
        holders = store.list_assignments_by_submission(assignment['submissionId'])

    excluded.update(a.get('reviewerUserId') for a in holders)
    return {
        'contestId': contest_id,
        'reviewers': [rid for rid in pool if rid not in excluded],
    }


def reassign_expired_assignments(store=None, now=None, rng: Optional[random.Random] = None) -> Dict[str, Any]:
    """
    Give each EXPIRED, not yet replaced assignment of an open round to a random
    eligible reviewer with a fresh deadline. Reviewers who let several
    assignments expire recently are not picked. The original reviewer is not
    excused: the expired assignment still counts against them at phase end.
    """
    store = store or get_store()
    now = now or utc_now()
    rng = rng or random.Random()
    timestamp = to_iso(now)

    expired = store.list_expired_assignments()
    blocked = frequent_expirers(expired, now)
    if blocked:
        logger.info(f"Not reassigning to frequent expirers: {sorted(blocked)}")

    candidates = sorted(
        (a for a in expired if not a.get('reassignedTo')),
        key=lambda a: a['assignmentId']
    )

    reassigned = 0
    skipped = 0
    errors = []
    for assignment in candidates:
        assignment_id = assignment['assignmentId']
        try:
            context = replacement_pool(assignment, store)
            if context is None:
                skipped += 1
                continue
            reviewers = [rid for rid in context['reviewers'] if rid not in blocked]
            if not reviewers:
                logger.warning(f"No eligible replacement reviewer for assignment {assignment_id}")
                skipped += 1
                continue

            new_reviewer = rng.choice(reviewers)
            contest = store.get_contest(context['contestId']) if context['contestId'] else None
            deadline = compute_deadline(round_settings(contest or {})['deadlineDays'], now)
            new_assignment = build_assignment(
                assignment['submissionId'],
                new_reviewer,
                assignment['roundId'],
                assignment.get('mode'),
                deadline,
                now
            )
            new_assignment['reassignedFrom'] = assignment_id

            store.replace_assignment(assignment_id, new_assignment, timestamp, excused=False)
            reassigned += 1
            logger.info(
                f"Expired assignment {assignment_id} of {assignment.get('reviewerUserId')} "
                f"reassigned to {new_reviewer} as {new_assignment['assignmentId']}"
            )
            notify_assigned({new_reviewer: 1}, new_assignment['deadline'], assignment['roundId'])
        except Exception as e:
            logger.error(f"Error reassigning expired assignment {assignment_id}: {e}")
            errors.append(f"{assignment_id}: {e}")

    return {'checked': len(candidates), 'reassigned': reassigned, 'skipped': skipped, 'errors': errors}


# =============================================================================
# Stalled verification rounds
# =============================================================================

def close_incomplete_verifications(store=None, now=None) -> Dict[str, Any]:
    """
    Close verification rounds open longer than VERIFICATION_MAX_DAYS with fewer
    than VERIFICATION_MIN_VOTES completed votes on the contested submission.
    The submission stays eliminated, the verdict is INCOMPLETE and the round's
    remaining PENDING assignments expire.
    """
    store = store or get_store()
    now = now or utc_now()
    timestamp = to_iso(now)
    max_age = timedelta(days=config.VERIFICATION_MAX_DAYS)

    pending = store.list_submissions_by_status(SubmissionStatus.PEER_VERIFICATION_PENDING)

    closed = 0
    errors = []
    for submission in pending:
        submission_id = submission['submissionId']
        try:
            assignments = store.list_assignments_by_round(submission_id)
            if not assignments:
                continue
            started = min(parse_iso(a['assignedAt']) for a in assignments)
            if now - started <= max_age:
                continue

            by_status = defaultdict(int)
            for a in assignments:
                if a.get('submissionId') == submission_id:
                    by_status[a.get('status')] += 1
            votes = by_status[AssignmentStatus.DONE]
            if votes >= config.VERIFICATION_MIN_VOTES:
                continue

            message = (
                f"Verification closed after {config.VERIFICATION_MAX_DAYS} days with "
                f"{votes} of {config.VERIFICATION_MIN_VOTES} required votes; the elimination stands"
            )
            verdict = {
                'decision': VerdictDecision.INCOMPLETE,
                'completedVotes': votes,
                'requiredVotes': config.VERIFICATION_MIN_VOTES,
                'totalAssignments': sum(by_status.values()),
                'completedAt': timestamp,
                'message': message,
            }
            if not store.close_verification_round(submission_id, SubmissionStatus.ELIMINATED, verdict, timestamp):
                logger.info(f"Verification round {submission_id} settled concurrently; left in place")
                continue
            closed += 1
            logger.info(f"Verification round {submission_id} closed as INCOMPLETE ({votes} votes)")

            for a in assignments:
                if a.get('status') == AssignmentStatus.PENDING:
                    store.expire_assignment(a['assignmentId'], timestamp)

            if submission.get('userId'):
                notify_verdict(submission['userId'], submission_id, VerdictDecision.INCOMPLETE, message)
        except Exception as e:
            logger.error(f"Error closing verification round {submission_id}: {e}")
            errors.append(f"{submission_id}: {e}")

    return {'checked': len(pending), 'closed': closed, 'errors': errors}

"""
Peer-review phase end.

Steps, in order:
1. Finalize peer scores for every eligible submission with completed reviews
2. Disqualify the submissions of reviewers who did not finish their assignments
3. Select and rank finalists
4. Move the contest to the next phase
5. Notify disqualified users and finalists (best-effort)

The phase transition is the last state change, so a failure in steps 1-4
leaves the contest in PEER_REVIEW and the whole run can be retried.
"""
from collections import defaultdict
from typing import Dict, Any, List, Optional

from .assignment import round_settings
from .errors import NotFound
from .logging import logger
from .models import AssignmentStatus, ContestPhase, ReviewMode, SubmissionStatus
from .notifications import notify_disqualified, notify_finalist
from .scoring import calculate_peer_score
from .store import get_store
from .utils import utc_now, to_iso

# Submissions that may (still) be ranked as finalists
FINALIST_POOL = (SubmissionStatus.SUBMITTED, SubmissionStatus.REINSTATED, SubmissionStatus.FINALIST)


def finalize_scores(contest_id: str, store, now) -> int:
    """Re-run score aggregation for eligible submissions with at least one DONE review."""
    finalized = 0
    for submission in store.list_contest_submissions(contest_id, SubmissionStatus.ELIGIBLE):
        submission_id = submission['submissionId']
        has_done = any(
            a.get('status') == AssignmentStatus.DONE
            for a in store.list_assignments_by_submission(submission_id)
            if a.get('mode', ReviewMode.CRITERIA) == ReviewMode.CRITERIA
        )
        if not has_done:
            logger.info(f"Submission {submission_id}: no completed reviews, skipping")
            continue
        if calculate_peer_score(submission_id, store=store, now=now) is not None:
            finalized += 1
    return finalized


def reviewer_obligations(contest_id: str, store) -> Dict[str, Dict[str, int]]:
    """
    {reviewerId: {'assigned', 'completed'}} over the contest's peer-review round.
    Assignments an admin took away from a reviewer are not counted against them;
    ones reassigned automatically after expiring still are.
    """
    stats = defaultdict(lambda: {'assigned': 0, 'completed': 0})
    for a in store.list_assignments_by_round(contest_id):
        if a.get('obligationExcused'):
            continue
        entry = stats[a['reviewerUserId']]
        entry['assigned'] += 1
        if a.get('status') == AssignmentStatus.DONE:
            entry['completed'] += 1
    return dict(stats)


def enforce_review_obligations(contest_id: str, store, now) -> List[str]:
    """
    Disqualify every eligible submission owned by a reviewer with
    completed < assigned.

    Returns:
        User ids with at least one submission disqualified by this call
    """
    stats = reviewer_obligations(contest_id, store)
    if not stats:
        logger.info("No assignments found for contest")
        return []

    defaulters = sorted(uid for uid, s in stats.items() if s['completed'] < s['assigned'])
    if not defaulters:
        logger.info("All reviewers completed their obligations")
        return []
    logger.info(f"Found {len(defaulters)} reviewers with incomplete reviews")

    owned = defaultdict(list)
    for submission in store.list_contest_submissions(contest_id, SubmissionStatus.ELIGIBLE):
        owned[submission.get('userId')].append(submission['submissionId'])

    timestamp = to_iso(now)
    disqualified_users = []
    for user_id in defaulters:
        changed = False
        for submission_id in owned.get(user_id, []):
            # Conditional on the eligible statuses: a rerun is a no-op
            if store.transition_submission_status(
                submission_id, SubmissionStatus.DISQUALIFIED, SubmissionStatus.ELIGIBLE, timestamp
            ):
                changed = True
                s = stats[user_id]
                logger.info(
                    f"Disqualified submission {submission_id} "
                    f"(completed {s['completed']}/{s['assigned']} reviews)"
                )
        if changed:
            disqualified_users.append(user_id)
    return disqualified_users


def select_finalists(contest_id: str, finalist_count: int, store, now) -> List[Dict[str, Any]]:
    """
    Rank scored submissions by scorePeer descending (ties: submissionId
    ascending) and mark the top finalist_count as FINALIST with ranks 1..N.
    """
    pool = [
        s for s in store.list_contest_submissions(contest_id, FINALIST_POOL)
        if s.get('scorePeer') is not None
    ]
    if not pool:
        logger.info("No submissions with peer scores found")
        return []

    pool.sort(key=lambda s: (-float(s['scorePeer']), s['submissionId']))
    timestamp = to_iso(now)

    finalists = []
    for submission in pool[:finalist_count]:
        rank = len(finalists) + 1
        if not store.mark_finalist(submission['submissionId'], rank, timestamp):
            logger.warning(f"Submission {submission['submissionId']} changed status; not marked finalist")
            continue
        finalists.append({
            'submissionId': submission['submissionId'],
            'userId': submission.get('userId'),
            'scorePeer': submission['scorePeer'],
            'rank': rank,
        })

    if finalists:
        logger.info(
            f"Selected top {len(finalists)} submissions "
            f"(score range {finalists[0]['scorePeer']} - {finalists[-1]['scorePeer']})"
        )
    return finalists


def end_peer_review_phase(
    contest_id: str,
    finalist_count: Optional[int] = None,
    store=None,
    now=None
) -> Dict[str, Any]:
    """
    Close the peer-review phase of a contest.

    Returns:
        Result dict; on failure success is False and the counts reflect the
        steps that completed before the error
    """
    store = store or get_store()
    now = now or utc_now()

    logger.info(f"Processing peer review phase end for contest {contest_id}")

    result = {
        'success': True,
        'scoresFinalized': 0,
        'disqualifiedCount': 0,
        'disqualifiedUserIds': [],
        'finalistsCount': 0,
        'finalistSubmissionIds': [],
        'finalists': [],
        'phase': None,
        'completedSteps': [],
        'errors': [],
    }

    try:
        contest = store.get_contest(contest_id)
        if not contest:
            raise NotFound('Contest not found')
        result['phase'] = contest.get('phase')
        finalist_count = finalist_count or round_settings(contest)['finalistCount']

        logger.info("Step 1: finalizing peer scores")
        result['scoresFinalized'] = finalize_scores(contest_id, store, now)
        result['completedSteps'].append('finalizeScores')
        logger.info(f"Finalized {result['scoresFinalized']} peer scores")

        logger.info("Step 2: enforcing review obligations")
        disqualified = enforce_review_obligations(contest_id, store, now)
        result['disqualifiedUserIds'] = disqualified
        result['disqualifiedCount'] = len(disqualified)
        result['completedSteps'].append('enforceObligations')
        logger.info(f"Disqualified {len(disqualified)} users for incomplete reviews")

        logger.info("Step 3: selecting finalists")
        finalists = select_finalists(contest_id, finalist_count, store, now)
        result['finalists'] = finalists
        result['finalistsCount'] = len(finalists)
        result['finalistSubmissionIds'] = [f['submissionId'] for f in finalists]
        result['completedSteps'].append('selectFinalists')
        logger.info(f"Selected {len(finalists)} finalists")

        logger.info("Step 4: transitioning contest phase")
        next_phase = ContestPhase.NEXT[ContestPhase.PEER_REVIEW]
        store.update_contest_phase(contest_id, next_phase, to_iso(now))
        result['phase'] = next_phase
        result['completedSteps'].append('transitionPhase')
        logger.info(f"Contest {contest_id} transitioned to {next_phase}")

    except Exception as e:
        logger.error(f"Error ending peer review phase for {contest_id}: {e}", exc_info=True)
        result['success'] = False
        result['errors'].append(getattr(e, 'message', None) or str(e))
        return result

    logger.info("Step 5: sending notifications")
    try:
        notify_disqualified(result['disqualifiedUserIds'], contest_id)
        notify_finalist(result['finalists'], contest_id)
        result['completedSteps'].append('notify')
    except Exception as e:
        logger.error(f"Error sending phase end notifications: {e}")

    logger.info(f"Peer review phase end complete for contest {contest_id}")
    return result

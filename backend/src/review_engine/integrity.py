"""
Reviewer integrity scoring.

Control items (ground truth known from AI screening):
    +10 when the reviewer agrees with the AI, -5 otherwise.
Contested items (under genuine dispute):
    +5 in the majority, -3 in a minority smaller than 30%, 0 otherwise.

Deltas are applied with an atomic ADD, and each review carries the delta it
produced, so retries and overlapping rounds never double-count or lose updates.
"""
from typing import Dict, Any, List, Optional

from .config import config
from .logging import logger
from .models import AssignmentStatus, Decision, ScreeningStatus, SubmissionStatus
from .screening import get_ai_decision
from .store import get_store
from .utils import utc_now, to_iso

CONTROL_MATCH = 10
CONTROL_MISMATCH = -5
MAJORITY = 5
SMALL_MINORITY = -3


def majority_decision(breakdown: Dict[str, Any]) -> str:
    # Simple majority, independent of the verdict thresholds
    return Decision.REINSTATE if breakdown['reinstatePercentage'] > 50 else Decision.ELIMINATE


def calculate_integrity_delta(
    decision: str,
    is_control: bool,
    ai_decision: Optional[str],
    breakdown: Dict[str, Any]
) -> int:
    if is_control:
        if ai_decision is None:
            logger.warning("No AI screening found for control item; integrity delta is 0")
            return 0
        matched = (
            (ai_decision == ScreeningStatus.FAILED and decision == Decision.ELIMINATE) or
            (ai_decision == ScreeningStatus.PASSED and decision == Decision.REINSTATE)
        )
        return CONTROL_MATCH if matched else CONTROL_MISMATCH

    if decision == majority_decision(breakdown):
        return MAJORITY

    share = (
        breakdown['reinstatePercentage'] if decision == Decision.REINSTATE
        else breakdown['eliminatePercentage']
    )
    if share < config.MINORITY_PENALTY_THRESHOLD:
        return SMALL_MINORITY
    return 0


def is_control_item(submission_id: str, round_id: str, status: Optional[str]) -> bool:
    """
    A reviewed item is contested if it is the round's own submission or is
    awaiting verification; anything else has AI ground truth.
    """
    if submission_id == round_id:
        return False
    return status != SubmissionStatus.PEER_VERIFICATION_PENDING


def _round_reviews(round_id: str, store) -> List[Dict[str, Any]]:
    done_ids = sorted(
        a['assignmentId'] for a in store.list_assignments_by_round(round_id)
        if a.get('status') == AssignmentStatus.DONE
    )
    return store.list_reviews(done_ids) if done_ids else []


def update_integrity_scores(
    round_id: str,
    breakdown: Dict[str, Any],
    reviews: Optional[List[Dict[str, Any]]] = None,
    statuses: Optional[Dict[str, str]] = None,
    store=None,
    now=None
) -> Dict[str, Any]:
    """
    Score every completed review of a verification round.

    Args:
        round_id: verification round id (the contested submission id)
        breakdown: vote breakdown of the contested item
        reviews: the round's DONE reviews, loaded when omitted
        statuses: submission statuses captured before the verdict was written

    Returns:
        {'scored': int, 'alreadyScored': int, 'deltas': {assignmentId: delta}}
    """
    store = store or get_store()
    timestamp = to_iso(now or utc_now())
    reviews = _round_reviews(round_id, store) if reviews is None else reviews
    statuses = dict(statuses or {})

    logger.info(f"Updating integrity scores for round {round_id} ({len(reviews)} reviews)")

    summary = {'scored': 0, 'alreadyScored': 0, 'deltas': {}}
    touched = []

    for review in sorted(reviews, key=lambda r: r['assignmentId']):
        decision = review.get('decision')
        if decision not in Decision.ALL:
            continue
        if review.get('integrityDelta') is not None:
            summary['alreadyScored'] += 1
            continue

        submission_id = review['submissionId']
        if submission_id not in statuses:
            submission = store.get_submission(submission_id) or {}
            statuses[submission_id] = submission.get('status')

        control = is_control_item(submission_id, round_id, statuses[submission_id])
        ai_decision = get_ai_decision(submission_id, store=store) if control else None
        delta = calculate_integrity_delta(decision, control, ai_decision, breakdown)

        reviewer_id = review['reviewerUserId']
        new_score = store.apply_integrity_delta(review['assignmentId'], reviewer_id, delta, timestamp)
        if new_score is None:
            summary['alreadyScored'] += 1
            continue

        logger.info(
            f"Reviewer {reviewer_id}: {'control' if control else 'contested'} item, "
            f"delta {delta:+d}, score now {new_score}"
        )
        summary['scored'] += 1
        summary['deltas'][review['assignmentId']] = delta
        if reviewer_id not in touched:
            touched.append(reviewer_id)

    for reviewer_id in touched:
        check_qualified_evaluator_status(reviewer_id, store=store, now=now)

    return summary


def check_qualified_evaluator_status(user_id: str, store=None, now=None) -> Optional[Dict[str, Any]]:
    """
    qualified = completed assignments >= 3 AND integrity score >= 0.
    The flag is written only when it changes; scores below the flag
    threshold get an admin-review marker.
    """
    store = store or get_store()
    timestamp = to_iso(now or utc_now())

    user = store.get_user(user_id)
    if not user:
        logger.warning(f"User {user_id} not found for qualification check")
        return None

    score = int(user.get('integrityScore', 0) or 0)
    completed = sum(
        1 for a in store.list_assignments_by_reviewer(user_id)
        if a.get('status') == AssignmentStatus.DONE
    )
    qualified = completed >= config.QUALIFICATION_MIN_COMPLETED and score >= 0

    changed = False
    if qualified != bool(user.get('qualifiedEvaluator', False)):
        changed = store.set_qualified_evaluator(user_id, qualified, timestamp)
        if changed:
            action = 'Granted' if qualified else 'Revoked'
            logger.info(f"Reviewer {user_id}: {action} Qualified Evaluator status")

    flagged = False
    if score < config.INTEGRITY_FLAG_THRESHOLD:
        flagged = store.flag_user_for_review(
            user_id, f'Integrity score {score} below {config.INTEGRITY_FLAG_THRESHOLD}', timestamp
        )
        logger.warning(f"Reviewer {user_id}: integrity score {score} below threshold, flagged for admin review")

    return {
        'qualified': qualified,
        'changed': changed,
        'completedCount': completed,
        'integrityScore': score,
        'flagged': flagged,
    }

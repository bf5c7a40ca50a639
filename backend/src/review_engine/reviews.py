"""
Review validation, recording and completion tracking.

A review is accepted only while its assignment is PENDING, owned by the
caller and within its deadline. The write itself is a DynamoDB transaction
(see ReviewStore.record_review), so two concurrent submitters for the same
assignment produce exactly one review.
"""
import uuid
from datetime import datetime
from typing import Dict, Any, List, Optional

from .config import config
from .errors import ReviewEngineError, NotFound, Forbidden, Conflict, ValidationFailed
from .logging import logger
from .models import AssignmentStatus, ReviewMode, Decision, CRITERIA
from .queue import enqueue_scoring_job, ScoringJobType
from .store import get_store
from .utils import utc_now, to_iso, parse_iso


def validate_review(
    assignment_id: str,
    reviewer_id: str,
    store=None,
    now: Optional[datetime] = None
) -> Dict[str, Any]:
    """
    Check whether reviewer_id may review assignment_id right now.

    Returns:
        {'valid': True, 'assignment': {...}} or
        {'valid': False, 'error': str, 'errorType': str, 'statusCode': int}
    """
    try:
        assignment = _check_review_allowed(assignment_id, reviewer_id, store or get_store(), now or utc_now())
    except ReviewEngineError as e:
        return {
            'valid': False,
            'error': e.message,
            'errorType': e.error_type,
            'statusCode': e.status_code,
        }
    return {'valid': True, 'assignment': assignment}


def _check_review_allowed(assignment_id: str, reviewer_id: str, store, now: datetime) -> Dict[str, Any]:
    assignment = store.get_assignment(assignment_id)
    if not assignment:
        raise NotFound('Assignment not found')

    if assignment.get('reviewerUserId') != reviewer_id:
        raise Forbidden('You do not own this assignment')

    if assignment.get('status') != AssignmentStatus.PENDING:
        raise Conflict('Assignment is already completed or expired')

    if now > parse_iso(assignment['deadline']):
        raise Conflict('Assignment has expired')

    if store.get_review(assignment_id):
        raise Conflict('You have already submitted a review for this assignment')

    submission = store.get_submission(assignment['submissionId'])
    if submission and submission.get('userId') == reviewer_id:
        raise Forbidden('You cannot review your own submission')

    return assignment


def _is_score(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 1 <= value <= 5


def validate_review_payload(mode: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate and normalise a review payload for the given mode.

    Raises:
        ValidationFailed: with a message naming the offending field
    """
    if not isinstance(payload, dict):
        raise ValidationFailed('Request body must be a JSON object')

    comment = payload.get('comment')
    if not isinstance(comment, str) or not comment.strip():
        raise ValidationFailed('Comment is required')
    comment = comment.strip()
    if len(comment) > config.COMMENT_MAX_LENGTH:
        raise ValidationFailed(f'Comment must be {config.COMMENT_MAX_LENGTH} characters or less')

    if mode == ReviewMode.CRITERIA:
        scores = payload.get('scores') or {}
        cleaned = {}
        for criterion in CRITERIA:
            value = scores.get(criterion)
            if not _is_score(value):
                raise ValidationFailed(f'{criterion} must be an integer between 1 and 5')
            cleaned[criterion] = value
        return {**cleaned, 'comment': comment}

    if mode == ReviewMode.DECISION:
        decision = payload.get('decision')
        if decision not in Decision.ALL:
            raise ValidationFailed('Decision must be ELIMINATE or REINSTATE')
        return {'decision': decision, 'comment': comment}

    raise ValidationFailed(f'Unknown review mode: {mode}')


def submit_review(
    assignment_id: str,
    reviewer_id: str,
    payload: Dict[str, Any],
    store=None,
    now: Optional[datetime] = None
) -> Dict[str, Any]:
    """
    Record a review and mark its assignment DONE, then run the completion check.

    Raises:
        NotFound / Forbidden / Conflict: from validation or the transactional write
        ValidationFailed: malformed payload
    """
    store = store or get_store()
    now = now or utc_now()

    assignment = _check_review_allowed(assignment_id, reviewer_id, store, now)
    mode = assignment.get('mode', ReviewMode.CRITERIA)
    fields = validate_review_payload(mode, payload)

    review = {
        'reviewId': str(uuid.uuid4()),
        'assignmentId': assignment_id,
        'reviewerUserId': reviewer_id,
        'submissionId': assignment['submissionId'],
        'roundId': assignment.get('roundId'),
        'mode': mode,
        'createdAt': to_iso(now),
        **fields,
    }

    # Re-checks status, deadline and ownership atomically with the insert
    store.record_review(review, reviewer_id, to_iso(now))
    logger.info(f"Review {review['reviewId']} recorded for assignment {assignment_id}")

    completion = run_completion_check(assignment, store=store)

    return {
        'reviewId': review['reviewId'],
        'assignmentId': assignment_id,
        'submissionId': assignment['submissionId'],
        'completion': completion,
    }


def completion_status(assignments: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    complete = every counted assignment is DONE, and there is at least one.
    Assignments replaced by an admin reassignment are not counted.
    """
    counted = [a for a in assignments if not a.get('reassignedTo')]
    done = sum(1 for a in counted if a.get('status') == AssignmentStatus.DONE)
    total = len(counted)
    return {
        'complete': total > 0 and done == total,
        'reviewCount': done,
        'totalExpected': total,
    }


def check_submission_completion(submission_id: str, store=None) -> Dict[str, Any]:
    """Completion of a submission's contest peer-review assignments."""
    store = store or get_store()
    assignments = [
        a for a in store.list_assignments_by_submission(submission_id)
        if a.get('mode', ReviewMode.CRITERIA) == ReviewMode.CRITERIA
    ]
    return completion_status(assignments)


def check_round_completion(round_id: str, store=None) -> Dict[str, Any]:
    """Completion of a verification round: the contested item plus its controls."""
    store = store or get_store()
    return completion_status(store.list_assignments_by_round(round_id))


def run_completion_check(assignment: Dict[str, Any], store=None) -> Dict[str, Any]:
    """
    Run the completion check that applies to the assignment's mode and, when
    complete, dispatch the aggregation job. Dispatch failures are logged only.
    """
    if assignment.get('mode') == ReviewMode.DECISION:
        target = assignment['roundId']
        status = check_round_completion(target, store=store)
        job_type = ScoringJobType.VERIFICATION
    else:
        target = assignment['submissionId']
        status = check_submission_completion(target, store=store)
        job_type = ScoringJobType.PEER_SCORE

    logger.info(f"Completion for {target}: {status['reviewCount']}/{status['totalExpected']}")

    status['scoringQueued'] = False
    if status['complete']:
        try:
            status['scoringQueued'] = enqueue_scoring_job(job_type, target, store=store)
        except Exception as e:
            logger.error(f"Failed to dispatch scoring for {target}: {e}")
    return status

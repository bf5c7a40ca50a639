"""
Administrative corrections: force-reassigning an assignment and overriding
a verification verdict. Both leave an audit log entry.
"""
from typing import Dict, Any

from .assignment import build_assignment, round_settings
from .audit import write_audit_log, before_after
from .config import config
from .errors import NotFound, Forbidden, Conflict, ValidationFailed
from .logging import logger
from .models import AssignmentStatus, OverrideOutcome, SubmissionStatus
from .notifications import notify_assigned, notify_verdict
from .store import get_store
from .utils import utc_now, to_iso, compute_deadline

# outcome -> (new submission status, author message)
OVERRIDE_OUTCOMES = {
    OverrideOutcome.REINSTATED: (
        SubmissionStatus.REINSTATED, 'Admin override: Your submission has been reinstated.'
    ),
    OverrideOutcome.ELIMINATED: (
        SubmissionStatus.ELIMINATED, 'Admin override: AI elimination decision confirmed.'
    ),
    OverrideOutcome.AI_DECISION_UPHELD: (
        SubmissionStatus.ELIMINATED, 'Admin override: AI decision upheld.'
    ),
}


def reassign_assignment(
    assignment_id: str,
    new_reviewer_id: str,
    justification: str,
    actor: str,
    store=None,
    now=None
) -> Dict[str, Any]:
    """
    Expire an assignment and give its submission to another reviewer with a
    fresh deadline. The swap is a single transaction.

    Raises:
        ValidationFailed: missing or short justification
        NotFound: assignment or new reviewer missing
        Forbidden: new reviewer owns the submission
        Conflict: assignment already DONE or already reassigned, or new reviewer
            already holds an active assignment
    """
    store = store or get_store()
    now = now or utc_now()

    justification = (justification or '').strip()
    if len(justification) < config.REASSIGN_JUSTIFICATION_MIN_LENGTH:
        raise ValidationFailed(
            f'Justification is required (minimum {config.REASSIGN_JUSTIFICATION_MIN_LENGTH} characters)'
        )

    assignment = store.get_assignment(assignment_id)
    if not assignment:
        raise NotFound('Assignment not found')
    if assignment.get('status') == AssignmentStatus.DONE:
        raise Conflict('Cannot reassign a completed assignment')
    if assignment.get('reassignedTo'):
        raise Conflict('Assignment has already been reassigned')

    if not store.get_user(new_reviewer_id):
        raise NotFound('Reviewer not found')

    submission = store.get_submission(assignment['submissionId'])
    if not submission:
        raise NotFound('Submission not found')
    if submission.get('userId') == new_reviewer_id:
        raise Forbidden('Cannot assign reviewer to their own submission')

    for existing in store.list_assignments_by_submission(assignment['submissionId']):
        if existing.get('reviewerUserId') == new_reviewer_id and existing.get('status') != AssignmentStatus.EXPIRED:
            raise Conflict('New reviewer already has an assignment for this submission')

    contest = store.get_contest(submission.get('contestId')) if submission.get('contestId') else None
    deadline = compute_deadline(round_settings(contest or {})['deadlineDays'], now)

    new_assignment = build_assignment(
        assignment['submissionId'],
        new_reviewer_id,
        assignment.get('roundId'),
        assignment.get('mode'),
        deadline,
        now
    )
    new_assignment['reassignedFrom'] = assignment_id

    store.replace_assignment(assignment_id, new_assignment, to_iso(now))
    logger.info(
        f"Assignment {assignment_id} reassigned from {assignment.get('reviewerUserId')} "
        f"to {new_reviewer_id} as {new_assignment['assignmentId']}"
    )

    notify_assigned({new_reviewer_id: 1}, new_assignment['deadline'], assignment.get('roundId'))

    write_audit_log(
        actor, 'REASSIGN', 'assignment', assignment_id,
        {
            **before_after(
                {'reviewerUserId': assignment.get('reviewerUserId'), 'status': assignment.get('status')},
                {'reviewerUserId': new_reviewer_id, 'assignmentId': new_assignment['assignmentId']}
            ),
            'justification': justification,
        },
        store=store, now=now
    )

    return {
        'oldAssignmentId': assignment_id,
        'newAssignment': new_assignment,
    }


def override_verdict(
    submission_id: str,
    outcome: str,
    justification: str,
    actor: str,
    store=None,
    now=None
) -> Dict[str, Any]:
    """
    Replace a verification verdict with an admin decision. The computed
    verdict is kept under originalResult, and later recomputes leave the
    override in place.

    Raises:
        ValidationFailed: unknown outcome or short justification
        NotFound: submission missing
        Conflict: submission is not in a verification state
    """
    store = store or get_store()
    now = now or utc_now()

    if outcome not in OverrideOutcome.ALL:
        raise ValidationFailed('Valid outcome is required (REINSTATED, ELIMINATED, or AI_DECISION_UPHELD)')
    justification = (justification or '').strip()
    if len(justification) < config.OVERRIDE_JUSTIFICATION_MIN_LENGTH:
        raise ValidationFailed(
            f'Justification is required (minimum {config.OVERRIDE_JUSTIFICATION_MIN_LENGTH} characters)'
        )

    submission = store.get_submission(submission_id)
    if not submission:
        raise NotFound('Submission not found')

    current_status = submission.get('status')
    if current_status not in SubmissionStatus.VERIFICATION:
        raise Conflict('Can only override peer verification submissions')

    new_status, message = OVERRIDE_OUTCOMES[outcome]
    original = submission.get('peerVerificationResult') or {}
    timestamp = to_iso(now)

    result = {
        **{k: v for k, v in original.items() if k != 'originalResult'},
        'message': message,
        'adminOverride': True,
        'adminOverrideOutcome': outcome,
        'adminOverrideJustification': justification,
        'adminOverrideBy': actor,
        'adminOverrideAt': timestamp,
        'originalResult': original.get('originalResult', original),
    }

    store.apply_verdict_override(submission_id, current_status, new_status, result, timestamp)
    logger.info(f"Admin {actor} overrode verdict for {submission_id}: {current_status} -> {new_status}")

    write_audit_log(
        actor, 'OVERRIDE_VERDICT', 'submission', submission_id,
        {
            **before_after({'status': current_status}, {'status': new_status}),
            'outcome': outcome,
            'justification': justification,
        },
        store=store, now=now
    )

    if submission.get('userId'):
        notify_verdict(submission['userId'], submission_id, outcome, message, overridden=True)

    return {
        'submissionId': submission_id,
        'previousStatus': current_status,
        'newStatus': new_status,
        'peerVerificationResult': result,
    }

"""
Shared fixtures: an in-memory stand-in for ReviewStore that enforces the same
conditional-write rules as the DynamoDB implementation.
"""
import copy
import os
import sys
import threading
from datetime import datetime, timezone

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from review_engine.errors import Conflict  # noqa: E402
from review_engine.models import AssignmentStatus, SubmissionStatus  # noqa: E402

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class InMemoryStore:
    """Dict-backed store with the conditional semantics of ReviewStore."""

    def __init__(self):
        self.contests = {}
        self.submissions = {}
        self.users = {}
        self.assignments = {}
        self.reviews = {}
        self.audit_logs = []
        self.screenings = {}
        self.lock = threading.RLock()

    # -- seeding helpers --------------------------------------------------

    def add_contest(self, contest_id, phase='PEER_REVIEW', **extra):
        self.contests[contest_id] = {'contestId': contest_id, 'phase': phase, **extra}
        return self.contests[contest_id]

    def add_user(self, user_id, **extra):
        self.users[user_id] = {'userId': user_id, 'email': f'{user_id}@example.com', **extra}
        return self.users[user_id]

    def add_submission(self, submission_id, user_id, contest_id='c1', status=SubmissionStatus.SUBMITTED, **extra):
        if user_id not in self.users:
            self.add_user(user_id)
        self.submissions[submission_id] = {
            'submissionId': submission_id,
            'userId': user_id,
            'contestId': contest_id,
            'status': status,
            **extra,
        }
        return self.submissions[submission_id]

    def add_screening(self, submission_id, status):
        self.screenings[submission_id] = {'submissionId': submission_id, 'status': status}

    # -- contests ---------------------------------------------------------

    def get_contest(self, contest_id):
        return copy.deepcopy(self.contests.get(contest_id))

    def update_contest_phase(self, contest_id, phase, timestamp):
        self.contests[contest_id].update({'phase': phase, 'updatedAt': timestamp})

    # -- submissions ------------------------------------------------------

    def get_submission(self, submission_id):
        with self.lock:
            return copy.deepcopy(self.submissions.get(submission_id))

    def list_contest_submissions(self, contest_id, statuses=None):
        statuses = list(statuses) if statuses else None
        items = [
            copy.deepcopy(s) for s in self.submissions.values()
            if s.get('contestId') == contest_id and (statuses is None or s['status'] in statuses)
        ]
        return sorted(items, key=lambda s: s['submissionId'])

    def list_submissions_by_status(self, status):
        items = [copy.deepcopy(s) for s in self.submissions.values() if s['status'] == status]
        return sorted(items, key=lambda s: s['submissionId'])

    def update_submission_score(self, submission_id, score, details, timestamp):
        self.submissions[submission_id].update({
            'scorePeer': score, 'scoreDetails': copy.deepcopy(details), 'updatedAt': timestamp
        })

    def write_verification_result(self, submission_id, new_status, result, reentry_pending, timestamp):
        with self.lock:
            submission = self.submissions[submission_id]
            if (submission.get('peerVerificationResult') or {}).get('adminOverride'):
                return False
            submission.update({
                'status': new_status,
                'peerVerificationResult': copy.deepcopy(result),
                'reentryPending': reentry_pending,
                'updatedAt': timestamp,
            })
            return True

    def close_verification_round(self, submission_id, new_status, result, timestamp):
        with self.lock:
            submission = self.submissions[submission_id]
            if (
                submission['status'] != SubmissionStatus.PEER_VERIFICATION_PENDING
                or (submission.get('peerVerificationResult') or {}).get('adminOverride')
            ):
                return False
            submission.update({
                'status': new_status,
                'peerVerificationResult': copy.deepcopy(result),
                'reentryPending': False,
                'updatedAt': timestamp,
            })
            return True

    def transition_submission_status(self, submission_id, new_status, from_statuses, timestamp):
        with self.lock:
            submission = self.submissions.get(submission_id)
            if not submission or submission['status'] not in list(from_statuses):
                return False
            submission.update({'status': new_status, 'updatedAt': timestamp})
            return True

    def mark_finalist(self, submission_id, rank, timestamp):
        with self.lock:
            submission = self.submissions.get(submission_id)
            allowed = (SubmissionStatus.SUBMITTED, SubmissionStatus.REINSTATED, SubmissionStatus.FINALIST)
            if not submission or submission['status'] not in allowed:
                return False
            submission.update({'status': SubmissionStatus.FINALIST, 'finalistRank': rank, 'updatedAt': timestamp})
            return True

    def apply_verdict_override(self, submission_id, expected_status, new_status, result, timestamp):
        with self.lock:
            submission = self.submissions[submission_id]
            if submission['status'] != expected_status:
                raise Conflict('Submission status changed while applying the override; please retry')
            submission.update({
                'status': new_status,
                'peerVerificationResult': copy.deepcopy(result),
                'updatedAt': timestamp,
            })

    # -- users ------------------------------------------------------------

    def get_user(self, user_id):
        with self.lock:
            return copy.deepcopy(self.users.get(user_id))

    def set_qualified_evaluator(self, user_id, qualified, timestamp):
        with self.lock:
            user = self.users.setdefault(user_id, {'userId': user_id})
            if 'qualifiedEvaluator' in user and user['qualifiedEvaluator'] == qualified:
                return False
            user.update({'qualifiedEvaluator': qualified, 'updatedAt': timestamp})
            return True

    def flag_user_for_review(self, user_id, reason, timestamp):
        with self.lock:
            user = self.users.setdefault(user_id, {'userId': user_id})
            if user.get('flaggedForReview'):
                return False
            user.update({'flaggedForReview': True, 'flagReason': reason, 'flaggedAt': timestamp})
            return True

    def apply_integrity_delta(self, assignment_id, reviewer_id, delta, timestamp):
        with self.lock:
            review = self.reviews.get(assignment_id)
            if review is None or 'integrityDelta' in review:
                return None
            review.update({'integrityDelta': delta, 'integrityScoredAt': timestamp})
            user = self.users.setdefault(reviewer_id, {'userId': reviewer_id})
            user['integrityScore'] = user.get('integrityScore', 0) + delta
            return user['integrityScore']

    # -- assignments ------------------------------------------------------

    def put_assignments(self, assignments):
        for a in assignments:
            self.assignments[a['assignmentId']] = copy.deepcopy(a)

    def get_assignment(self, assignment_id):
        with self.lock:
            return copy.deepcopy(self.assignments.get(assignment_id))

    def _assignments_where(self, field, value):
        with self.lock:
            return [copy.deepcopy(a) for a in self.assignments.values() if a.get(field) == value]

    def list_assignments_by_submission(self, submission_id):
        return self._assignments_where('submissionId', submission_id)

    def list_assignments_by_round(self, round_id):
        return self._assignments_where('roundId', round_id)

    def list_assignments_by_reviewer(self, reviewer_id):
        return self._assignments_where('reviewerUserId', reviewer_id)

    def list_pending_assignments(self, deadline_before=None, deadline_from=None):
        return [
            copy.deepcopy(a) for a in self.assignments.values()
            if a['status'] == AssignmentStatus.PENDING
            and (deadline_before is None or a['deadline'] < deadline_before)
            and (deadline_from is None or a['deadline'] >= deadline_from)
        ]

    def list_expired_assignments(self):
        return [copy.deepcopy(a) for a in self.assignments.values() if a['status'] == AssignmentStatus.EXPIRED]

    def expire_assignment(self, assignment_id, timestamp):
        with self.lock:
            a = self.assignments.get(assignment_id)
            if not a or a['status'] != AssignmentStatus.PENDING:
                return False
            a.update({'status': AssignmentStatus.EXPIRED, 'expiredAt': timestamp})
            return True

    def replace_assignment(self, old_assignment_id, new_assignment, timestamp, excused=True):
        with self.lock:
            old = self.assignments[old_assignment_id]
            if (
                old['status'] == AssignmentStatus.DONE or old.get('reassignedTo')
                or new_assignment['assignmentId'] in self.assignments
            ):
                raise Conflict('Assignment was completed or reassigned concurrently')
            old.update({
                'status': AssignmentStatus.EXPIRED,
                'expiredAt': old.get('expiredAt', timestamp),
                'reassignedTo': new_assignment['assignmentId'],
                'obligationExcused': excused,
            })
            self.assignments[new_assignment['assignmentId']] = copy.deepcopy(new_assignment)

    # -- reviews ----------------------------------------------------------

    def get_review(self, assignment_id):
        with self.lock:
            return copy.deepcopy(self.reviews.get(assignment_id))

    def list_reviews(self, assignment_ids):
        with self.lock:
            return [copy.deepcopy(self.reviews[a]) for a in assignment_ids if a in self.reviews]

    def record_review(self, review, reviewer_id, timestamp):
        with self.lock:
            assignment_id = review['assignmentId']
            if assignment_id in self.reviews:
                raise Conflict('You have already submitted a review for this assignment')
            a = self.assignments.get(assignment_id)
            if (
                not a or a['status'] != AssignmentStatus.PENDING
                or a['deadline'] < timestamp or a['reviewerUserId'] != reviewer_id
            ):
                raise Conflict('Assignment is already completed or expired')
            self.reviews[assignment_id] = copy.deepcopy(review)
            a.update({'status': AssignmentStatus.DONE, 'completedAt': timestamp})

    # -- audit & screening -----------------------------------------------

    def put_audit_log(self, entry):
        self.audit_logs.append(copy.deepcopy(entry))

    def get_ai_screening(self, submission_id):
        return copy.deepcopy(self.screenings.get(submission_id))


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def now():
    return NOW

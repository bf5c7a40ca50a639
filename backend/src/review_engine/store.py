"""
DynamoDB persistence for the peer-review engine.

All state-machine writes are conditional so that concurrent Lambda
invocations cannot double-submit a review, double-disqualify a submission
or lose an integrity-score update:
- Review uniqueness: reviews are keyed by assignmentId and written with
  attribute_not_exists(assignmentId) in the same transaction that flips the
  assignment to DONE.
- Integrity scores are changed with ADD (atomic increment), never
  read-modify-write.
"""
from typing import List, Dict, Any, Optional, Iterable

import boto3
from boto3.dynamodb.conditions import Key, Attr
from boto3.dynamodb.types import TypeSerializer
from botocore.exceptions import ClientError

from .config import config
from .errors import Conflict, Internal
from .logging import logger
from .models import AssignmentStatus, SubmissionStatus
from .utils import to_dynamo, from_dynamo

_serializer = TypeSerializer()

# DynamoDB BatchGetItem limit
BATCH_GET_LIMIT = 100


def serialize_item(item: Dict[str, Any]) -> Dict[str, Any]:
    """Convert a plain item to the typed attribute format used by the client API."""
    return {k: _serializer.serialize(v) for k, v in to_dynamo(item).items() if v is not None}


def cancellation_codes(error: ClientError) -> List[str]:
    """Extract per-item cancellation codes from a TransactionCanceledException."""
    reasons = error.response.get('CancellationReasons') or []
    return [r.get('Code', 'None') for r in reasons]


def is_condition_failure(error: ClientError) -> bool:
    return error.response['Error']['Code'] == 'ConditionalCheckFailedException'


class ReviewStore:
    """Table access for submissions, assignments, reviews, users and contests."""

    def __init__(self, resource=None):
        self.dynamodb = resource or boto3.resource('dynamodb', region_name=config.AWS_REGION)
        self.client = self.dynamodb.meta.client

    def _table(self, name: str):
        return self.dynamodb.Table(name)

    def _get(self, table_name: str, key: Dict[str, Any], consistent: bool = False) -> Optional[Dict[str, Any]]:
        try:
            response = self._table(table_name).get_item(Key=key, ConsistentRead=consistent)
        except ClientError as e:
            logger.error(f"Error getting item from {table_name}: {e}")
            raise Internal(f"Failed to read from {table_name}") from e
        item = response.get('Item')
        return from_dynamo(item) if item else None

    def _query_all(
        self,
        table_name: str,
        index_name: str,
        key_condition: Any,
        filter_expression: Optional[Any] = None
    ) -> List[Dict[str, Any]]:
        """Query a GSI and follow pagination until exhausted."""
        table = self._table(table_name)
        params = {
            'IndexName': index_name,
            'KeyConditionExpression': key_condition,
        }
        if filter_expression is not None:
            params['FilterExpression'] = filter_expression

        items = []
        try:
            while True:
                response = table.query(**params)
                items.extend(response.get('Items', []))
                if 'LastEvaluatedKey' not in response:
                    break
                params['ExclusiveStartKey'] = response['LastEvaluatedKey']
        except ClientError as e:
            logger.error(f"Error querying {table_name}/{index_name}: {e}")
            raise Internal(f"Failed to query {table_name}") from e
        return [from_dynamo(i) for i in items]

    def _scan_all(self, table_name: str, filter_expression: Any) -> List[Dict[str, Any]]:
        table = self._table(table_name)
        params = {'FilterExpression': filter_expression}
        items = []
        try:
            while True:
                response = table.scan(**params)
                items.extend(response.get('Items', []))
                if 'LastEvaluatedKey' not in response:
                    break
                params['ExclusiveStartKey'] = response['LastEvaluatedKey']
        except ClientError as e:
            logger.error(f"Error scanning {table_name}: {e}")
            raise Internal(f"Failed to scan {table_name}") from e
        return [from_dynamo(i) for i in items]

    def _update(self, table_name: str, key: Dict[str, Any], **params) -> bool:
        """
        Conditional update helper.

        Returns:
            True if the item was updated, False if its condition failed
        """
        try:
            self._table(table_name).update_item(Key=key, **params)
            return True
        except ClientError as e:
            if is_condition_failure(e):
                return False
            logger.error(f"Error updating item in {table_name}: {e}")
            raise Internal(f"Failed to update {table_name}") from e

    # =========================================================================
    # Contests
    # =========================================================================

    def get_contest(self, contest_id: str) -> Optional[Dict[str, Any]]:
        return self._get(config.CONTESTS_TABLE, {'contestId': contest_id})

    def update_contest_phase(self, contest_id: str, phase: str, timestamp: str) -> None:
        self._update(
            config.CONTESTS_TABLE,
            {'contestId': contest_id},
            UpdateExpression='SET phase = :phase, updatedAt = :ts',
            ExpressionAttributeValues={':phase': phase, ':ts': timestamp}
        )

    # =========================================================================
    # Submissions
    # =========================================================================

    def get_submission(self, submission_id: str) -> Optional[Dict[str, Any]]:
        return self._get(config.SUBMISSIONS_TABLE, {'submissionId': submission_id}, consistent=True)

    def list_contest_submissions(
        self,
        contest_id: str,
        statuses: Optional[Iterable[str]] = None
    ) -> List[Dict[str, Any]]:
        """Submissions of a contest, optionally filtered by status, ordered by submissionId."""
        filter_expression = Attr('status').is_in(list(statuses)) if statuses else None
        items = self._query_all(
            config.SUBMISSIONS_TABLE,
            'byContest',
            Key('contestId').eq(contest_id),
            filter_expression
        )
        return sorted(items, key=lambda s: s['submissionId'])

    def list_submissions_by_status(self, status: str) -> List[Dict[str, Any]]:
        """Submissions of every contest in one status, ordered by submissionId."""
        items = self._scan_all(config.SUBMISSIONS_TABLE, Attr('status').eq(status))
        return sorted(items, key=lambda s: s['submissionId'])

    def update_submission_score(
        self,
        submission_id: str,
        score: float,
        details: Dict[str, Any],
        timestamp: str
    ) -> None:
        self._update(
            config.SUBMISSIONS_TABLE,
            {'submissionId': submission_id},
            UpdateExpression='SET scorePeer = :score, scoreDetails = :details, updatedAt = :ts',
            ExpressionAttributeValues=to_dynamo({
                ':score': score,
                ':details': details,
                ':ts': timestamp
            })
        )

    def write_verification_result(
        self,
        submission_id: str,
        new_status: str,
        result: Dict[str, Any],
        reentry_pending: bool,
        timestamp: str
    ) -> bool:
        """
        Store a computed verdict. Never replaces a verdict an admin overrode.

        Returns:
            False if an admin override is already in place
        """
        return self._update(
            config.SUBMISSIONS_TABLE,
            {'submissionId': submission_id},
            UpdateExpression=(
                'SET #status = :status, peerVerificationResult = :result, '
                'reentryPending = :reentry, updatedAt = :ts'
            ),
            ConditionExpression='attribute_not_exists(peerVerificationResult.adminOverride)',
            ExpressionAttributeNames={'#status': 'status'},
            ExpressionAttributeValues=to_dynamo({
                ':status': new_status,
                ':result': result,
                ':reentry': reentry_pending,
                ':ts': timestamp
            })
        )

    def close_verification_round(
        self,
        submission_id: str,
        new_status: str,
        result: Dict[str, Any],
        timestamp: str
    ) -> bool:
        """
        Store a verdict for a round that ended without one. Applies only while
        the submission is still PEER_VERIFICATION_PENDING and not overridden.

        Returns:
            True if this call closed the round
        """
        return self._update(
            config.SUBMISSIONS_TABLE,
            {'submissionId': submission_id},
            UpdateExpression=(
                'SET #status = :status, peerVerificationResult = :result, '
                'reentryPending = :false, updatedAt = :ts'
            ),
            ConditionExpression=(
                '#status = :pending AND attribute_not_exists(peerVerificationResult.adminOverride)'
            ),
            ExpressionAttributeNames={'#status': 'status'},
            ExpressionAttributeValues=to_dynamo({
                ':status': new_status,
                ':pending': SubmissionStatus.PEER_VERIFICATION_PENDING,
                ':result': result,
                ':false': False,
                ':ts': timestamp
            })
        )

    def transition_submission_status(
        self,
        submission_id: str,
        new_status: str,
        from_statuses: Iterable[str],
        timestamp: str
    ) -> bool:
        """
        Move a submission to new_status only if it is currently in from_statuses.

        Returns:
            True if this call changed the status
        """
        from_statuses = list(from_statuses)
        placeholders = {f':from{i}': s for i, s in enumerate(from_statuses)}
        return self._update(
            config.SUBMISSIONS_TABLE,
            {'submissionId': submission_id},
            UpdateExpression='SET #status = :status, updatedAt = :ts',
            ConditionExpression=f"#status IN ({', '.join(placeholders)})",
            ExpressionAttributeNames={'#status': 'status'},
            ExpressionAttributeValues={':status': new_status, ':ts': timestamp, **placeholders}
        )

    def mark_finalist(self, submission_id: str, rank: int, timestamp: str) -> bool:
        return self._update(
            config.SUBMISSIONS_TABLE,
            {'submissionId': submission_id},
            UpdateExpression='SET #status = :finalist, finalistRank = :rank, updatedAt = :ts',
            ConditionExpression='#status IN (:submitted, :reinstated, :finalist)',
            ExpressionAttributeNames={'#status': 'status'},
            ExpressionAttributeValues={
                ':finalist': SubmissionStatus.FINALIST,
                ':submitted': SubmissionStatus.SUBMITTED,
                ':reinstated': SubmissionStatus.REINSTATED,
                ':rank': rank,
                ':ts': timestamp
            }
        )

    def apply_verdict_override(
        self,
        submission_id: str,
        expected_status: str,
        new_status: str,
        result: Dict[str, Any],
        timestamp: str
    ) -> None:
        """Write an admin override; fails with Conflict if the submission changed meanwhile."""
        updated = self._update(
            config.SUBMISSIONS_TABLE,
            {'submissionId': submission_id},
            UpdateExpression='SET #status = :status, peerVerificationResult = :result, updatedAt = :ts',
            ConditionExpression='#status = :expected',
            ExpressionAttributeNames={'#status': 'status'},
            ExpressionAttributeValues=to_dynamo({
                ':status': new_status,
                ':expected': expected_status,
                ':result': result,
                ':ts': timestamp
            })
        )
        if not updated:
            raise Conflict('Submission status changed while applying the override; please retry')

    # =========================================================================
    # Users
    # =========================================================================

    def get_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        return self._get(config.USERS_TABLE, {'userId': user_id}, consistent=True)

    def set_qualified_evaluator(self, user_id: str, qualified: bool, timestamp: str) -> bool:
        """Persist the flag only when it changes. Returns True if it changed."""
        return self._update(
            config.USERS_TABLE,
            {'userId': user_id},
            UpdateExpression='SET qualifiedEvaluator = :q, updatedAt = :ts',
            ConditionExpression='attribute_not_exists(qualifiedEvaluator) OR qualifiedEvaluator <> :q',
            ExpressionAttributeValues={':q': qualified, ':ts': timestamp}
        )

    def flag_user_for_review(self, user_id: str, reason: str, timestamp: str) -> bool:
        """Set the admin-review marker once. Returns True if newly flagged."""
        return self._update(
            config.USERS_TABLE,
            {'userId': user_id},
            UpdateExpression='SET flaggedForReview = :true, flagReason = :reason, flaggedAt = :ts',
            ConditionExpression='attribute_not_exists(flaggedForReview) OR flaggedForReview = :false',
            ExpressionAttributeValues={
                ':true': True,
                ':false': False,
                ':reason': reason,
                ':ts': timestamp
            }
        )

    def apply_integrity_delta(
        self,
        assignment_id: str,
        reviewer_id: str,
        delta: int,
        timestamp: str
    ) -> Optional[int]:
        """
        Atomically record the delta on the review and ADD it to the reviewer's score.
        The review-side condition makes the increment happen at most once per review.

        Returns:
            The reviewer's new integrity score, or None if the review was already scored
        """
        try:
            self.client.transact_write_items(
                TransactItems=[
                    {
                        'Update': {
                            'TableName': config.REVIEWS_TABLE,
                            'Key': {'assignmentId': {'S': assignment_id}},
                            'UpdateExpression': 'SET integrityDelta = :delta, integrityScoredAt = :ts',
                            'ConditionExpression': 'attribute_exists(assignmentId) AND attribute_not_exists(integrityDelta)',
                            'ExpressionAttributeValues': {
                                ':delta': {'N': str(delta)},
                                ':ts': {'S': timestamp}
                            }
                        }
                    },
                    {
                        'Update': {
                            'TableName': config.USERS_TABLE,
                            'Key': {'userId': {'S': reviewer_id}},
                            'UpdateExpression': 'ADD integrityScore :delta SET updatedAt = :ts',
                            'ExpressionAttributeValues': {
                                ':delta': {'N': str(delta)},
                                ':ts': {'S': timestamp}
                            }
                        }
                    }
                ]
            )
        except ClientError as e:
            if e.response['Error']['Code'] == 'TransactionCanceledException':
                codes = cancellation_codes(e)
                if codes and codes[0] == 'ConditionalCheckFailed':
                    return None
            logger.error(f"Error applying integrity delta for {reviewer_id}: {e}")
            raise Internal('Failed to update integrity score') from e

        user = self.get_user(reviewer_id) or {}
        return int(user.get('integrityScore', 0))

    # =========================================================================
    # Assignments
    # =========================================================================

    def put_assignments(self, assignments: List[Dict[str, Any]]) -> None:
        """Write a batch of assignments (batch_writer handles 25-item chunks)."""
        try:
            table = self._table(config.ASSIGNMENTS_TABLE)
            with table.batch_writer() as batch:
                for item in assignments:
                    batch.put_item(Item=to_dynamo(item))
            logger.info(f"Successfully wrote {len(assignments)} items to {config.ASSIGNMENTS_TABLE}")
        except ClientError as e:
            logger.error(f"Error batch writing to {config.ASSIGNMENTS_TABLE}: {e}")
            raise Internal('Failed to save assignments') from e

    def get_assignment(self, assignment_id: str) -> Optional[Dict[str, Any]]:
        return self._get(config.ASSIGNMENTS_TABLE, {'assignmentId': assignment_id}, consistent=True)

    def list_assignments_by_submission(self, submission_id: str) -> List[Dict[str, Any]]:
        return self._query_all(config.ASSIGNMENTS_TABLE, 'bySubmission', Key('submissionId').eq(submission_id))

    def list_assignments_by_round(self, round_id: str) -> List[Dict[str, Any]]:
        return self._query_all(config.ASSIGNMENTS_TABLE, 'byRound', Key('roundId').eq(round_id))

    def list_assignments_by_reviewer(self, reviewer_id: str) -> List[Dict[str, Any]]:
        return self._query_all(config.ASSIGNMENTS_TABLE, 'byReviewer', Key('reviewerUserId').eq(reviewer_id))

    def list_pending_assignments(
        self,
        deadline_before: Optional[str] = None,
        deadline_from: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """
        PENDING assignments whose deadline lies in [deadline_from, deadline_before).
        In production, use a GSI on status + deadline for efficiency.
        """
        expression = Attr('status').eq(AssignmentStatus.PENDING)
        if deadline_before:
            expression = expression & Attr('deadline').lt(deadline_before)
        if deadline_from:
            expression = expression & Attr('deadline').gte(deadline_from)
        return self._scan_all(config.ASSIGNMENTS_TABLE, expression)

    def list_expired_assignments(self) -> List[Dict[str, Any]]:
        """All EXPIRED assignments, replaced or not."""
        return self._scan_all(config.ASSIGNMENTS_TABLE, Attr('status').eq(AssignmentStatus.EXPIRED))

    def expire_assignment(self, assignment_id: str, timestamp: str) -> bool:
        """Flip a PENDING assignment to EXPIRED. Returns False if it was no longer PENDING."""
        return self._update(
            config.ASSIGNMENTS_TABLE,
            {'assignmentId': assignment_id},
            UpdateExpression='SET #status = :expired, expiredAt = :ts',
            ConditionExpression='#status = :pending',
            ExpressionAttributeNames={'#status': 'status'},
            ExpressionAttributeValues={
                ':expired': AssignmentStatus.EXPIRED,
                ':pending': AssignmentStatus.PENDING,
                ':ts': timestamp
            }
        )

    def replace_assignment(
        self,
        old_assignment_id: str,
        new_assignment: Dict[str, Any],
        timestamp: str,
        excused: bool = True
    ) -> None:
        """
        Expire the old assignment and create its replacement in one transaction.
        An assignment is replaced at most once, and never after it is DONE.
        excused=False keeps the old assignment counting against its reviewer at phase end.
        """
        try:
            self.client.transact_write_items(
                TransactItems=[
                    {
                        'Update': {
                            'TableName': config.ASSIGNMENTS_TABLE,
                            'Key': {'assignmentId': {'S': old_assignment_id}},
                            'UpdateExpression': (
                                'SET #status = :expired, expiredAt = if_not_exists(expiredAt, :ts), '
                                'reassignedTo = :new, obligationExcused = :excused'
                            ),
                            'ConditionExpression': '#status <> :done AND attribute_not_exists(reassignedTo)',
                            'ExpressionAttributeNames': {'#status': 'status'},
                            'ExpressionAttributeValues': {
                                ':expired': {'S': AssignmentStatus.EXPIRED},
                                ':done': {'S': AssignmentStatus.DONE},
                                ':new': {'S': new_assignment['assignmentId']},
                                ':excused': {'BOOL': excused},
                                ':ts': {'S': timestamp}
                            }
                        }
                    },
                    {
                        'Put': {
                            'TableName': config.ASSIGNMENTS_TABLE,
                            'Item': serialize_item(new_assignment),
                            'ConditionExpression': 'attribute_not_exists(assignmentId)'
                        }
                    }
                ]
            )
        except ClientError as e:
            if e.response['Error']['Code'] == 'TransactionCanceledException':
                raise Conflict('Assignment was completed or reassigned concurrently') from e
            logger.error(f"Error reassigning {old_assignment_id}: {e}")
            raise Internal('Failed to reassign assignment') from e

    # =========================================================================
    # Reviews
    # =========================================================================

    def get_review(self, assignment_id: str) -> Optional[Dict[str, Any]]:
        return self._get(config.REVIEWS_TABLE, {'assignmentId': assignment_id}, consistent=True)

    def list_reviews(self, assignment_ids: List[str]) -> List[Dict[str, Any]]:
        """Fetch reviews for the given assignments (BatchGetItem, 100 keys per call)."""
        reviews = []
        for i in range(0, len(assignment_ids), BATCH_GET_LIMIT):
            chunk = assignment_ids[i:i + BATCH_GET_LIMIT]
            request = {
                config.REVIEWS_TABLE: {
                    'Keys': [{'assignmentId': a} for a in chunk],
                    'ConsistentRead': True
                }
            }
            try:
                while request:
                    response = self.dynamodb.batch_get_item(RequestItems=request)
                    reviews.extend(response.get('Responses', {}).get(config.REVIEWS_TABLE, []))
                    request = response.get('UnprocessedKeys') or None
            except ClientError as e:
                logger.error(f"Error batch reading {config.REVIEWS_TABLE}: {e}")
                raise Internal('Failed to read reviews') from e
        return [from_dynamo(r) for r in reviews]

    def record_review(self, review: Dict[str, Any], reviewer_id: str, timestamp: str) -> None:
        """
        Insert the review and mark its assignment DONE atomically.

        The transaction fails if a review already exists for the assignment, or if
        the assignment is no longer PENDING, past its deadline, or owned by someone else.
        """
        assignment_id = review['assignmentId']
        try:
            self.client.transact_write_items(
                TransactItems=[
                    {
                        'Put': {
                            'TableName': config.REVIEWS_TABLE,
                            'Item': serialize_item(review),
                            'ConditionExpression': 'attribute_not_exists(assignmentId)'
                        }
                    },
                    {
                        'Update': {
                            'TableName': config.ASSIGNMENTS_TABLE,
                            'Key': {'assignmentId': {'S': assignment_id}},
                            'UpdateExpression': 'SET #status = :done, completedAt = :ts',
                            'ConditionExpression': (
                                '#status = :pending AND deadline >= :ts AND reviewerUserId = :reviewer'
                            ),
                            'ExpressionAttributeNames': {'#status': 'status'},
                            'ExpressionAttributeValues': {
                                ':done': {'S': AssignmentStatus.DONE},
                                ':pending': {'S': AssignmentStatus.PENDING},
                                ':reviewer': {'S': reviewer_id},
                                ':ts': {'S': timestamp}
                            }
                        }
                    }
                ]
            )
        except ClientError as e:
            if e.response['Error']['Code'] == 'TransactionCanceledException':
                codes = cancellation_codes(e)
                if codes and codes[0] == 'ConditionalCheckFailed':
                    raise Conflict('You have already submitted a review for this assignment') from e
                raise Conflict('Assignment is already completed or expired') from e
            logger.error(f"Error recording review for assignment {assignment_id}: {e}")
            raise Internal('Failed to save review') from e

    # =========================================================================
    # Audit & screening
    # =========================================================================

    def put_audit_log(self, entry: Dict[str, Any]) -> None:
        try:
            self._table(config.AUDIT_LOGS_TABLE).put_item(
                Item=to_dynamo(entry),
                ConditionExpression='attribute_not_exists(auditId)'
            )
        except ClientError as e:
            logger.error(f"Error writing audit log: {e}")
            raise Internal('Failed to write audit log') from e

    def get_ai_screening(self, submission_id: str) -> Optional[Dict[str, Any]]:
        return self._get(config.AI_SCREENINGS_TABLE, {'submissionId': submission_id})


_store: Optional[ReviewStore] = None


def get_store() -> ReviewStore:
    """Module-level store, created on first use."""
    global _store
    if _store is None:
        _store = ReviewStore()
    return _store

"""
Tests for the Lambda handlers: API status mapping, queue consumers and email sending.
"""
import json
import pytest
from unittest.mock import MagicMock, patch

from review_engine.utils import utc_now
from test_reviews import add_assignment, GOOD_SCORES


def api_event(sub='rev', groups='', path=None, body=None):
    return {
        'requestContext': {'authorizer': {'claims': {'sub': sub, 'cognito:groups': groups}}},
        'pathParameters': path or {},
        'body': json.dumps(body or {}),
    }


@pytest.fixture
def global_store(store):
    with patch('review_engine.store._store', store):
        yield store


class TestSubmitReviewHandler:
    """Tests for POST /reviewer/assignments/{assignmentId}/review."""

    def test_unauthenticated(self):
        from handlers.reviews.submit_review import handler

        response = handler({'pathParameters': {'assignmentId': 'a1'}}, None)

        assert response['statusCode'] == 401

    def test_created(self, global_store):
        from handlers.reviews.submit_review import handler

        global_store.add_submission('s1', 'author')
        add_assignment(global_store, utc_now())

        response = handler(
            api_event(path={'assignmentId': 'a1'}, body={'scores': GOOD_SCORES, 'comment': 'Solid work'}),
            None
        )

        assert response['statusCode'] == 201
        assert json.loads(response['body'])['assignmentId'] == 'a1'
        assert global_store.assignments['a1']['status'] == 'DONE'

    def test_second_submit_conflicts(self, global_store):
        from handlers.reviews.submit_review import handler

        global_store.add_submission('s1', 'author')
        add_assignment(global_store, utc_now())
        event = api_event(path={'assignmentId': 'a1'}, body={'scores': GOOD_SCORES, 'comment': 'Clear argument'})

        handler(event, None)
        response = handler(event, None)

        assert response['statusCode'] == 409

    def test_invalid_body(self, global_store):
        from handlers.reviews.submit_review import handler

        global_store.add_submission('s1', 'author')
        add_assignment(global_store, utc_now())

        response = handler(api_event(path={'assignmentId': 'a1'}, body={'scores': {'clarity': 9}}), None)

        assert response['statusCode'] == 400
        assert global_store.assignments['a1']['status'] == 'PENDING'

    def test_unexpected_error(self):
        from handlers.reviews.submit_review import handler

        with patch('handlers.reviews.submit_review.submit_review', side_effect=RuntimeError('boom')):
            response = handler(api_event(path={'assignmentId': 'a1'}), None)

        assert response['statusCode'] == 500
        assert json.loads(response['body']) == {'error': 'Internal Server Error'}


class TestAdminHandlers:
    """Tests for the admin-only endpoints."""

    def test_end_phase_requires_admin(self):
        from handlers.admin.end_phase import handler

        response = handler(api_event(path={'contestId': 'c1'}), None)

        assert response['statusCode'] == 403

    def test_end_phase_passes_finalist_count(self):
        from handlers.admin.end_phase import handler

        with patch('handlers.admin.end_phase.end_peer_review_phase', return_value={'success': True}) as run:
            response = handler(api_event(groups='admin', path={'contestId': 'c1'}, body={'finalistCount': 3}), None)

        assert response['statusCode'] == 200
        run.assert_called_once_with('c1', finalist_count=3)

    def test_end_phase_failure_is_500(self):
        from handlers.admin.end_phase import handler

        result = {'success': False, 'errors': ['Contest not found']}
        with patch('handlers.admin.end_phase.end_peer_review_phase', return_value=result):
            response = handler(api_event(groups='admin', path={'contestId': 'c1'}), None)

        assert response['statusCode'] == 500
        assert json.loads(response['body'])['errors'] == ['Contest not found']

    @pytest.mark.parametrize('finalist_count', ['3', 0, -2, 2.5, True, [3]])
    def test_end_phase_rejects_bad_finalist_count(self, finalist_count):
        from handlers.admin.end_phase import handler

        with patch('handlers.admin.end_phase.end_peer_review_phase') as run:
            response = handler(
                api_event(groups='admin', path={'contestId': 'c1'}, body={'finalistCount': finalist_count}), None
            )

        assert response['statusCode'] == 400
        assert json.loads(response['body'])['type'] == 'ValidationFailed'
        run.assert_not_called()

    @pytest.mark.parametrize('body', [
        {'reviewsPerReviewer': 'five'},
        {'reviewsPerReviewer': 0},
        {'deadlineDays': -1},
        {'reviewsPerReviewer': 3, 'deadlineDays': '7'},
    ])
    def test_create_assignments_rejects_bad_settings(self, body):
        from handlers.assignments.create_assignments import handler

        with patch('handlers.assignments.create_assignments.create_peer_review_assignments') as run:
            response = handler(api_event(groups='admin', path={'contestId': 'c1'}, body=body), None)

        assert response['statusCode'] == 400
        assert 'positive integer' in json.loads(response['body'])['error']
        run.assert_not_called()

    def test_create_assignments_passes_settings(self):
        from handlers.assignments.create_assignments import handler

        with patch(
            'handlers.assignments.create_assignments.create_peer_review_assignments',
            return_value={'success': True}
        ) as run:
            response = handler(
                api_event(groups='admin', path={'contestId': 'c1'}, body={'reviewsPerReviewer': 4}), None
            )

        assert response['statusCode'] == 200
        run.assert_called_once_with('c1', quota=4, deadline_days=None)

    def test_override_maps_engine_errors(self, global_store):
        from handlers.admin.override_verdict import handler

        response = handler(
            api_event(sub='admin-1', groups='admin', path={'submissionId': 's1'},
                      body={'outcome': 'REINSTATED', 'justification': 'short'}),
            None
        )

        assert response['statusCode'] == 400

    def test_override_success(self, global_store):
        from handlers.admin.override_verdict import handler

        global_store.add_submission('s1', 'author', status='ELIMINATED')

        response = handler(
            api_event(sub='admin-1', groups='admin', path={'submissionId': 's1'},
                      body={'outcome': 'REINSTATED', 'justification': 'Votes were cast on the wrong file'}),
            None
        )

        assert response['statusCode'] == 200
        assert json.loads(response['body'])['newStatus'] == 'REINSTATED'
        assert global_store.audit_logs[0]['actor'] == 'admin-1'


class TestCronHandlers:
    """Tests for the scheduled sweeps."""

    def test_reassign_expired_runs_sweep(self):
        from handlers.cron.reassign_expired_assignments import handler

        summary = {'checked': 2, 'reassigned': 1, 'skipped': 1, 'errors': []}
        with patch('handlers.cron.reassign_expired_assignments.reassign_expired_assignments',
                   return_value=summary) as run:
            assert handler({}, None) == summary
        run.assert_called_once_with()

    def test_close_incomplete_verifications_on_store(self, global_store):
        from handlers.cron.close_incomplete_verifications import handler

        global_store.add_submission('x', 'author', status='PEER_VERIFICATION_PENDING')

        assert handler({}, None) == {'checked': 1, 'closed': 0, 'errors': []}


class TestScoringQueueConsumer:
    """Tests for the scoring queue handler."""

    def test_reports_failed_records_only(self):
        from handlers.scoring.process_scoring_queue import handler

        def run(job):
            if job['submissionId'] == 'bad':
                raise RuntimeError('boom')

        event = {'Records': [
            {'messageId': 'm1', 'body': json.dumps({'type': 'PEER_SCORE', 'submissionId': 'ok'})},
            {'messageId': 'm2', 'body': json.dumps({'type': 'PEER_SCORE', 'submissionId': 'bad'})},
            {'messageId': 'm3', 'body': 'not json'},
        ]}

        with patch('handlers.scoring.process_scoring_queue.process_scoring_job', side_effect=run) as process:
            result = handler(event, None)

        assert result == {'batchItemFailures': [{'itemIdentifier': 'm2'}, {'itemIdentifier': 'm3'}]}
        assert process.call_count == 2


class TestSendNotifications:
    """Tests for the SES notification sender."""

    def test_sends_rendered_email(self, store):
        from handlers.notifications import send_notifications
        from review_engine.notifications import build_message

        store.add_user('u1')
        message = build_message('FINALIST', 'u1', contestId='c1', submissionId='s1', rank=2)

        with patch.object(send_notifications, 'ses') as ses:
            assert send_notifications.send_notification(message, store=store) is True

        kwargs = ses.send_email.call_args[1]
        assert kwargs['Destination'] == {'ToAddresses': ['u1@example.com']}
        assert '#2' in kwargs['Message']['Body']['Text']['Data']

    def test_user_without_email_skipped(self, store):
        from handlers.notifications import send_notifications

        store.users['u1'] = {'userId': 'u1'}

        with patch.object(send_notifications, 'ses') as ses:
            sent = send_notifications.send_notification({'type': 'DISQUALIFIED', 'userId': 'u1', 'data': {}}, store=store)

        assert sent is False
        ses.send_email.assert_not_called()

    def test_ses_failure_reported(self, global_store):
        from handlers.notifications import send_notifications

        global_store.add_user('u1')
        event = {'Records': [{
            'messageId': 'm1',
            'body': json.dumps({'type': 'DEADLINE_WARNING', 'userId': 'u1', 'data': {'pendingCount': 2}}),
        }]}

        with patch.object(send_notifications, 'ses') as ses:
            ses.send_email.side_effect = RuntimeError('throttled')
            result = send_notifications.handler(event, None)

        assert result == {'batchItemFailures': [{'itemIdentifier': 'm1'}]}


class TestEmailTemplates:
    """Tests for render_email."""

    def test_override_verdict_mentions_admin(self):
        from review_engine.email_templates import render_email

        content = render_email({
            'type': 'VERDICT',
            'data': {'decision': 'REINSTATED', 'message': 'Reinstated.', 'overridden': True, 'submissionId': 's1'},
        })

        assert content['subject'] == 'Your submission has been reinstated'
        assert 'administrator' in content['text']

    def test_unknown_type(self):
        from review_engine.email_templates import render_email

        with pytest.raises(KeyError):
            render_email({'type': 'NOPE'})


class TestQueueDispatch:
    """Tests for SQS dispatch of scoring jobs and notifications."""

    def test_scoring_job_sent_when_queue_configured(self):
        from review_engine import queue

        with patch.object(queue.config, 'SCORING_QUEUE_URL', 'https://sqs/scoring'), \
                patch.object(queue, 'sqs') as sqs:
            assert queue.enqueue_scoring_job('PEER_SCORE', 's1') is True

        kwargs = sqs.send_message.call_args[1]
        assert kwargs['QueueUrl'] == 'https://sqs/scoring'
        assert json.loads(kwargs['MessageBody']) == {'type': 'PEER_SCORE', 'submissionId': 's1'}

    def test_inline_failure_not_raised(self):
        from review_engine import queue

        with patch.object(queue.config, 'SCORING_QUEUE_URL', ''), \
                patch('review_engine.scoring.process_scoring_job', side_effect=RuntimeError('boom')):
            assert queue.enqueue_scoring_job('PEER_SCORE', 's1') is False

    def test_rejected_entries_retried_once(self):
        from review_engine import queue

        sqs = MagicMock()
        sqs.send_message_batch.side_effect = [
            {'Failed': []},
            {'Failed': [{'Id': '0'}]},
            {},
        ]
        with patch.object(queue, 'sqs', sqs):
            ok = queue.send_message_batch('https://sqs/n', [{'n': i} for i in range(12)])

        assert ok is True
        retry_entries = sqs.send_message_batch.call_args_list[2][1]['Entries']
        assert [json.loads(e['MessageBody']) for e in retry_entries] == [{'n': 10}]

    def test_partial_batch_failure(self):
        from review_engine import queue

        sqs = MagicMock()
        sqs.send_message_batch.side_effect = [{'Failed': [{'Id': '1'}]}, {'Failed': [{'Id': '1'}]}]
        with patch.object(queue, 'sqs', sqs):
            ok = queue.send_message_batch('https://sqs/n', [{'n': 0}, {'n': 1}])

        assert ok is False
        assert sqs.send_message_batch.call_count == 2

    def test_notifications_without_queue(self):
        from review_engine import notifications

        with patch.object(notifications.config, 'NOTIFICATION_QUEUE_URL', ''):
            assert notifications.notify_disqualified(['u1'], 'c1') is False


class TestRequestHelpers:
    """Tests for auth claims and body parsing."""

    @pytest.mark.parametrize('groups, expected', [
        ('admin', True),
        ('reviewer,admin', True),
        ('[reviewer admin]', True),
        (['admin'], True),
        ('reviewer', False),
        ('', False),
    ])
    def test_admin_group(self, groups, expected):
        from review_engine.auth import is_admin

        assert is_admin(api_event(groups=groups)) is expected

    def test_missing_claims(self):
        from review_engine.auth import get_user_sub, is_admin

        assert get_user_sub({'requestContext': {}}) is None
        assert is_admin({}) is False

    def test_parse_body(self):
        import base64
        from review_engine.utils import parse_body

        encoded = base64.b64encode(b'{"outcome": "REINSTATED"}').decode()

        assert parse_body({'body': '{"a": 1}'}) == {'a': 1}
        assert parse_body({'body': encoded, 'isBase64Encoded': True}) == {'outcome': 'REINSTATED'}
        assert parse_body({'body': '[1, 2]'}) == {}
        assert parse_body({'body': 'not json'}) == {}
        assert parse_body({}) == {}

    def test_error_response(self):
        from review_engine.errors import Conflict
        from review_engine.utils import error_response

        response = error_response(Conflict('Assignment has expired'))

        assert response['statusCode'] == 409
        assert json.loads(response['body']) == {'error': 'Assignment has expired', 'type': 'Conflict'}

"""
Create Peer Review Assignments Handler.
POST /admin/contests/{contestId}/assignments
"""
from review_engine.assignment import create_peer_review_assignments
from review_engine.auth import is_admin
from review_engine.errors import ReviewEngineError
from review_engine.logging import logger, log_event
from review_engine.utils import format_response, error_response, parse_body, get_path_param, optional_positive_int


def handler(event, context):
    """
    Admin starts the peer-review round of a contest.

    Optional body: {"reviewsPerReviewer": int, "deadlineDays": int}
    """
    log_event(event)

    if not is_admin(event):
        return format_response(403, {'error': 'Admin access required'})

    contest_id = get_path_param(event, 'contestId')
    if not contest_id:
        return format_response(400, {'error': 'Missing contestId'})

    try:
        body = parse_body(event)
        result = create_peer_review_assignments(
            contest_id,
            quota=optional_positive_int(body, 'reviewsPerReviewer'),
            deadline_days=optional_positive_int(body, 'deadlineDays')
        )
        return format_response(200 if result['success'] else 400, result)

    except ReviewEngineError as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"Error creating assignments for contest {contest_id}: {e}", exc_info=True)
        return format_response(500, {'error': 'Internal Server Error'})

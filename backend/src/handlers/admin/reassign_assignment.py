"""
Reassign Assignment Handler.
POST /admin/assignments/{assignmentId}/reassign
"""
from review_engine.admin import reassign_assignment
from review_engine.auth import is_admin, get_user_sub
from review_engine.errors import ReviewEngineError
from review_engine.logging import logger, log_event
from review_engine.utils import format_response, error_response, parse_body, get_path_param


def handler(event, context):
    """
    Body: {"newReviewerId": "...", "justification": "..."}
    """
    log_event(event)

    if not is_admin(event):
        return format_response(403, {'error': 'Admin access required'})

    assignment_id = get_path_param(event, 'assignmentId')
    body = parse_body(event)
    new_reviewer_id = body.get('newReviewerId')

    if not assignment_id or not new_reviewer_id:
        return format_response(400, {'error': 'Assignment ID and new reviewer ID are required'})

    try:
        result = reassign_assignment(
            assignment_id,
            new_reviewer_id,
            body.get('justification', ''),
            actor=get_user_sub(event)
        )
        return format_response(200, {
            'message': 'Assignment reassigned successfully',
            'oldAssignmentId': result['oldAssignmentId'],
            'newAssignmentId': result['newAssignment']['assignmentId'],
            'deadline': result['newAssignment']['deadline'],
        })

    except ReviewEngineError as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"Error reassigning assignment {assignment_id}: {e}", exc_info=True)
        return format_response(500, {'error': 'Internal Server Error'})

"""
Submit Review Handler.
POST /reviewer/assignments/{assignmentId}/review
"""
from review_engine.auth import get_user_sub
from review_engine.errors import ReviewEngineError
from review_engine.logging import logger, log_event
from review_engine.reviews import submit_review
from review_engine.utils import format_response, error_response, parse_body, get_path_param


def handler(event, context):
    """
    Reviewer submits the review for one of their assignments.

    Body (peer review):   {"scores": {"clarity": 1-5, "argument": 1-5, "style": 1-5, "moralDepth": 1-5},
                           "comment": "..."}
    Body (verification):  {"decision": "ELIMINATE" | "REINSTATE", "comment": "..."}
    """
    log_event(event)

    reviewer_id = get_user_sub(event)
    if not reviewer_id:
        return format_response(401, {'error': 'Unauthorized'})

    assignment_id = get_path_param(event, 'assignmentId')
    if not assignment_id:
        return format_response(400, {'error': 'Missing assignmentId'})

    try:
        result = submit_review(assignment_id, reviewer_id, parse_body(event))
        return format_response(201, {
            'message': 'Review submitted successfully',
            'reviewId': result['reviewId'],
            'assignmentId': assignment_id,
        })

    except ReviewEngineError as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"Error submitting review for assignment {assignment_id}: {e}", exc_info=True)
        return format_response(500, {'error': 'Internal Server Error'})

"""
Override Verification Verdict Handler.
POST /admin/submissions/{submissionId}/verification-override
"""
from review_engine.admin import override_verdict
from review_engine.auth import is_admin, get_user_sub
from review_engine.errors import ReviewEngineError
from review_engine.logging import logger, log_event
from review_engine.utils import format_response, error_response, parse_body, get_path_param


def handler(event, context):
    """
    Body: {"outcome": "REINSTATED" | "ELIMINATED" | "AI_DECISION_UPHELD", "justification": "..."}
    """
    log_event(event)

    if not is_admin(event):
        return format_response(403, {'error': 'Admin access required'})

    submission_id = get_path_param(event, 'submissionId')
    if not submission_id:
        return format_response(400, {'error': 'Submission ID is required'})

    body = parse_body(event)

    try:
        result = override_verdict(
            submission_id,
            body.get('outcome'),
            body.get('justification'),
            actor=get_user_sub(event)
        )
        return format_response(200, {
            'message': 'Verdict overridden successfully',
            'submissionId': submission_id,
            'newStatus': result['newStatus'],
        })

    except ReviewEngineError as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"Error overriding verdict for {submission_id}: {e}", exc_info=True)
        return format_response(500, {'error': 'Internal Server Error'})

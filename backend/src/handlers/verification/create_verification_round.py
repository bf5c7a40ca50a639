"""
Create Verification Round Handler.
POST /submissions/{submissionId}/verification-round

Invoked once a submission enters PEER_VERIFICATION_PENDING (after the author
pays for peer verification of an AI elimination).
"""
from review_engine.errors import ReviewEngineError
from review_engine.logging import logger, log_event
from review_engine.utils import format_response, error_response, get_path_param
from review_engine.verification import create_verification_round


def handler(event, context):
    log_event(event)

    # Direct invocation passes the id at the top level
    submission_id = get_path_param(event, 'submissionId') or event.get('submissionId')
    if not submission_id:
        return format_response(400, {'error': 'Missing submissionId'})

    try:
        result = create_verification_round(submission_id)
        return format_response(200 if result['success'] else 400, result)

    except ReviewEngineError as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"Error creating verification round for {submission_id}: {e}", exc_info=True)
        return format_response(500, {'error': 'Internal Server Error'})

"""
End Peer Review Phase Handler.
POST /admin/contests/{contestId}/end-peer-review
"""
from review_engine.auth import is_admin
from review_engine.errors import ReviewEngineError
from review_engine.logging import logger, log_event
from review_engine.phase_end import end_peer_review_phase
from review_engine.utils import format_response, error_response, parse_body, get_path_param, optional_positive_int


def handler(event, context):
    """
    Finalize scores, disqualify non-completers, select finalists and open public voting.
    Optional body: {"finalistCount": int}
    """
    log_event(event)

    if not is_admin(event):
        return format_response(403, {'error': 'Admin access required'})

    contest_id = get_path_param(event, 'contestId')
    if not contest_id:
        return format_response(400, {'error': 'Missing contestId'})

    try:
        body = parse_body(event)
        result = end_peer_review_phase(contest_id, finalist_count=optional_positive_int(body, 'finalistCount'))
        # Failures are reported in the result; the run is safe to retry
        return format_response(200 if result['success'] else 500, result)

    except ReviewEngineError as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"Error ending peer review phase for {contest_id}: {e}", exc_info=True)
        return format_response(500, {'error': 'Internal Server Error'})

"""
Close Incomplete Verifications Handler.
Triggered by EventBridge scheduler (daily) to close verification rounds stalled without enough votes.
"""
from review_engine.deadlines import close_incomplete_verifications
from review_engine.logging import logger


def handler(event, context):
    """
    Rounds older than VERIFICATION_MAX_DAYS with too few votes end as INCOMPLETE;
    the submission stays eliminated.
    """
    logger.info("Checking for stalled verification rounds...")
    result = close_incomplete_verifications()
    logger.info(f"Verification sweep done: {result['closed']}/{result['checked']} closed")
    return result

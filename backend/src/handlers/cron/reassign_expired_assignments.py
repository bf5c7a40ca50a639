"""
Reassign Expired Assignments Handler.
Triggered by EventBridge scheduler (hourly, after expiration) to hand expired work to another reviewer.
"""
from review_engine.deadlines import reassign_expired_assignments
from review_engine.logging import logger


def handler(event, context):
    logger.info("Reassigning expired review assignments...")
    result = reassign_expired_assignments()
    logger.info(
        f"Reassignment done: {result['reassigned']}/{result['checked']} reassigned, "
        f"{result['skipped']} skipped"
    )
    return result

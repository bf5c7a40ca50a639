"""
Expire Assignments Handler.
Triggered by EventBridge scheduler (hourly) to expire overdue review assignments.
"""
from review_engine.deadlines import expire_overdue_assignments
from review_engine.logging import logger


def handler(event, context):
    """
    PENDING assignments past their deadline become EXPIRED.
    Expired assignments count against the reviewer at phase end.
    """
    logger.info("Running assignment expiration check...")
    result = expire_overdue_assignments()
    logger.info(f"Expiration check done: {result['expired']}/{result['checked']} expired")
    return result

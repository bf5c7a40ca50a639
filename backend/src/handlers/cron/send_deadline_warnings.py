"""
Deadline Warnings Handler.
Triggered by EventBridge scheduler (hourly) to remind reviewers of reviews due within a day.
"""
from review_engine.deadlines import send_deadline_warnings
from review_engine.logging import logger


def handler(event, context):
    logger.info("Sending peer review deadline warnings...")
    return send_deadline_warnings()

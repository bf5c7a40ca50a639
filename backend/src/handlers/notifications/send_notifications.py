"""
Notification Sender.
Triggered by SQS (Notification Queue). Sends notification emails through SES.
"""
import json

import boto3

from review_engine.config import config
from review_engine.email_templates import render_email
from review_engine.logging import logger
from review_engine.notifications import describe
from review_engine.store import get_store

ses = boto3.client('ses', region_name=config.AWS_REGION)


def handler(event, context):
    records = event.get('Records', [])
    failures = []
    sent = 0

    for record in records:
        try:
            if send_notification(json.loads(record['body'])):
                sent += 1
        except Exception as e:
            logger.error(f"Error sending notification {record.get('messageId')}: {e}", exc_info=True)
            failures.append({'itemIdentifier': record.get('messageId')})

    logger.info(f"Notifications: {sent} sent, {len(failures)} failed")
    return {'batchItemFailures': failures}


def send_notification(message: dict, store=None) -> bool:
    """
    Email one notification to its user.

    Returns:
        False if the user has no email address (the message is dropped)
    """
    store = store or get_store()
    user = store.get_user(message['userId'])
    email = (user or {}).get('email')
    if not email:
        logger.warning(f"No email found for {describe(message)}; skipping")
        return False

    content = render_email(message)
    ses.send_email(
        Source=config.SES_SENDER,
        Destination={'ToAddresses': [email]},
        Message={
            'Subject': {'Data': content['subject']},
            'Body': {'Text': {'Data': content['text']}}
        }
    )
    logger.info(f"Sent {describe(message)}")
    return True

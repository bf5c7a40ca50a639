"""
SQS access for the asynchronous scoring and notification work.
"""
import json
from typing import List, Dict, Any

import boto3
from botocore.exceptions import ClientError

from .config import config
from .logging import logger
from .utils import DecimalEncoder

sqs = boto3.client('sqs', region_name=config.AWS_REGION)

# SQS batch limit is 10 messages
SQS_BATCH_SIZE = 10


class ScoringJobType:
    """Aggregation job kinds carried on the scoring queue."""
    PEER_SCORE = 'PEER_SCORE'
    VERIFICATION = 'VERIFICATION'


def encode(message: Dict[str, Any]) -> str:
    return json.dumps(message, cls=DecimalEncoder, sort_keys=True)


def send_message(queue_url: str, message_body: Dict[str, Any]) -> bool:
    """
    Send one message.

    Returns:
        True if SQS accepted it
    """
    try:
        sqs.send_message(QueueUrl=queue_url, MessageBody=encode(message_body))
    except ClientError as e:
        logger.error(f"Error sending message to {queue_url}: {e}")
        return False
    logger.info(f"Message sent to {queue_url}")
    return True


def _send_entries(queue_url: str, entries: List[Dict[str, str]]) -> List[Dict[str, Any]]:
    """One SendMessageBatch call; returns the entries SQS reported as failed."""
    response = sqs.send_message_batch(QueueUrl=queue_url, Entries=entries)
    failed_ids = {f['Id'] for f in response.get('Failed') or []}
    return [e for e in entries if e['Id'] in failed_ids]


def send_message_batch(queue_url: str, messages: List[Dict[str, Any]]) -> bool:
    """
    Send messages 10 per request. Entries SQS rejects are retried once.

    Returns:
        True if every message was accepted
    """
    ok = True
    for i in range(0, len(messages), SQS_BATCH_SIZE):
        entries = [
            {'Id': str(idx), 'MessageBody': encode(msg)}
            for idx, msg in enumerate(messages[i:i + SQS_BATCH_SIZE])
        ]
        try:
            failed = _send_entries(queue_url, entries)
            if failed:
                logger.warning(f"{len(failed)} messages rejected by {queue_url}; retrying once")
                failed = _send_entries(queue_url, failed)
        except ClientError as e:
            logger.error(f"Error sending batch to {queue_url}: {e}")
            ok = False
            continue
        if failed:
            logger.error(f"{len(failed)} messages could not be sent to {queue_url}")
            ok = False

    logger.info(f"Sent batch of {len(messages)} messages to {queue_url} (all accepted: {ok})")
    return ok


def enqueue_scoring_job(job_type: str, submission_id: str, store=None) -> bool:
    """
    Fire-and-forget dispatch of an aggregation job.

    Without a configured queue the job runs inline; its failure is logged
    and never propagates to the caller.
    """
    job = {'type': job_type, 'submissionId': submission_id}

    if not config.SCORING_QUEUE_URL:
        # Deferred: scoring imports notifications, which imports this module
        from .scoring import process_scoring_job
        try:
            process_scoring_job(job, store=store)
            return True
        except Exception as e:
            logger.error(f"Inline scoring job failed for {submission_id}: {e}", exc_info=True)
            return False

    return send_message(config.SCORING_QUEUE_URL, job)

"""
Scoring Queue Consumer.
Triggered by SQS (Scoring Queue). Runs peer-score and verification aggregation jobs.
Failed messages are reported back so that only they are redelivered.
"""
import json

from review_engine.logging import logger
from review_engine.scoring import process_scoring_job


def handler(event, context):
    """
    Process a batch of scoring jobs: {"type": "PEER_SCORE" | "VERIFICATION", "submissionId": "..."}
    """
    records = event.get('Records', [])
    logger.info(f"Received {len(records)} scoring jobs")

    failures = []
    processed = 0
    for record in records:
        try:
            job = json.loads(record['body'])
            process_scoring_job(job)
            processed += 1
        except Exception as e:
            logger.error(f"Scoring job {record.get('messageId')} failed: {e}", exc_info=True)
            failures.append({'itemIdentifier': record.get('messageId')})

    logger.info(f"Scoring batch done: {processed} processed, {len(failures)} failed")
    return {'batchItemFailures': failures}

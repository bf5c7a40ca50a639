"""
Logging for Lambda handlers and engine services.

Everything goes through the `peer_review` logger; CloudWatch picks up the
stream output.
"""
import logging
import json
from typing import Any, Dict

from .config import config

logger = logging.getLogger('peer_review')
logger.setLevel(getattr(logging, config.LOG_LEVEL.upper(), logging.INFO))

if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    ))
    logger.addHandler(handler)


def describe_event(event: dict) -> Dict[str, Any]:
    """
    Summary of an API Gateway, SQS or scheduler event. Bodies, headers and
    token claims are left out.
    """
    if 'Records' in event:
        return {'source': 'sqs', 'records': len(event.get('Records') or [])}
    if event.get('source') == 'aws.events':
        return {'source': 'schedule', 'time': event.get('time')}

    claims = ((event.get('requestContext') or {}).get('authorizer') or {}).get('claims') or {}
    return {
        'source': 'api',
        'method': event.get('httpMethod'),
        'path': event.get('path'),
        'pathParameters': event.get('pathParameters'),
        'caller': claims.get('sub'),
    }


def log_event(event: dict) -> None:
    try:
        logger.info(f"Lambda event: {json.dumps(describe_event(event), default=str)}")
    except Exception as e:
        logger.warning(f"Could not log event: {e}")

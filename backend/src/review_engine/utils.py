"""
Helpers shared by Lambda handlers and engine services: API Gateway
request/response shaping, UTC timestamps and DynamoDB number conversion.
"""
import base64
import json
from datetime import datetime, timezone, timedelta
from decimal import Decimal
from typing import Any, Dict, Optional

from .errors import ValidationFailed

CORS_HEADERS = {
    'Access-Control-Allow-Origin': '*',
    'Access-Control-Allow-Credentials': True,
    'Content-Type': 'application/json'
}


class DecimalEncoder(json.JSONEncoder):
    """Serializes DynamoDB Decimals as int or float."""

    def default(self, o):
        if isinstance(o, Decimal):
            return from_dynamo(o)
        return super().default(o)


def format_response(
    status_code: int,
    body: Any,
    headers: Dict[str, str] = None
) -> Dict[str, Any]:
    """API Gateway proxy response with CORS headers and a JSON body."""
    return {
        'statusCode': status_code,
        'headers': {**CORS_HEADERS, **(headers or {})},
        'body': json.dumps(body, cls=DecimalEncoder)
    }


def error_response(error) -> Dict[str, Any]:
    """Response for a ReviewEngineError: its status code and message."""
    return format_response(error.status_code, {'error': error.message, 'type': error.error_type})


def parse_body(event: dict) -> dict:
    """
    JSON object body of an API Gateway event. Missing, malformed or
    non-object bodies give {}; base64-encoded bodies are decoded first.
    """
    body = event.get('body')
    if not body:
        return {}
    if isinstance(body, dict):
        return body
    try:
        if event.get('isBase64Encoded'):
            body = base64.b64decode(body).decode('utf-8')
        parsed = json.loads(body)
    except (ValueError, TypeError):
        return {}
    return parsed if isinstance(parsed, dict) else {}


def get_path_param(event: dict, param_name: str) -> Optional[str]:
    return (event.get('pathParameters') or {}).get(param_name)


def optional_positive_int(body: dict, key: str) -> Optional[int]:
    """body[key] as a positive int, or None when absent. Raises ValidationFailed otherwise."""
    value = body.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValidationFailed(f'{key} must be a positive integer')
    return value


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(dt: datetime) -> str:
    """Serialize a datetime as a UTC ISO-8601 string; fixed width, so text order is time order."""
    return dt.astimezone(timezone.utc).isoformat(timespec='microseconds')


def parse_iso(value: str) -> datetime:
    """Parse an ISO-8601 timestamp, treating naive values as UTC."""
    dt = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def compute_deadline(days: int, now: Optional[datetime] = None) -> datetime:
    """Deadline shared by every assignment created at `now`."""
    return (now or utc_now()) + timedelta(days=days)


def to_dynamo(value: Any) -> Any:
    """
    Convert floats (recursively) to Decimal for DynamoDB writes.
    boto3 rejects float values in item attributes.
    """
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, dict):
        return {k: to_dynamo(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_dynamo(v) for v in value]
    return value


def from_dynamo(value: Any) -> Any:
    """Convert Decimal values (recursively) back to int/float."""
    if isinstance(value, Decimal):
        if value % 1 == 0:
            return int(value)
        return float(value)
    if isinstance(value, dict):
        return {k: from_dynamo(v) for k, v in value.items()}
    if isinstance(value, list):
        return [from_dynamo(v) for v in value]
    return value

"""
Notification sink.
Every notify_* call enqueues messages for the SES sender and never raises:
a failed notification must not roll back the workflow that produced it.
"""
from typing import Dict, List, Any, Optional

from .config import config
from .logging import logger
from .models import NotificationType
from .queue import send_message_batch


def build_message(notification_type: str, user_id: str, **data) -> Dict[str, Any]:
    return {'type': notification_type, 'userId': user_id, 'data': data}


def dispatch(messages: List[Dict[str, Any]]) -> bool:
    """Enqueue messages on the notification queue (or just log them when none is configured)."""
    if not messages:
        return True

    if not config.NOTIFICATION_QUEUE_URL:
        for message in messages:
            logger.info(f"Notification (no queue configured): {message['type']} -> {message['userId']}")
        return False

    try:
        sent = send_message_batch(config.NOTIFICATION_QUEUE_URL, messages)
    except Exception as e:
        logger.error(f"Failed to dispatch {len(messages)} notifications: {e}")
        return False

    if not sent:
        logger.error(f"Failed to dispatch some of {len(messages)} notifications")
    return sent


def notify_assigned(reviewer_counts: Dict[str, int], deadline: str, round_id: str) -> bool:
    """One message per reviewer with their assignment count and the shared deadline."""
    return dispatch([
        build_message(
            NotificationType.ASSIGNED, reviewer_id,
            assignmentCount=count, deadline=deadline, roundId=round_id
        )
        for reviewer_id, count in reviewer_counts.items()
    ])


def notify_deadline_warning(reviewer_id: str, assignment_ids: List[str], deadline: str) -> bool:
    """One reminder covering all of the reviewer's assignments due in the window."""
    return dispatch([
        build_message(
            NotificationType.DEADLINE_WARNING, reviewer_id,
            assignmentIds=sorted(assignment_ids), pendingCount=len(assignment_ids), deadline=deadline
        )
    ])


def notify_verdict(
    user_id: str,
    submission_id: str,
    decision: str,
    message: str,
    overridden: bool = False
) -> bool:
    return dispatch([
        build_message(
            NotificationType.VERDICT, user_id,
            submissionId=submission_id, decision=decision,
            message=message, overridden=overridden
        )
    ])


def notify_disqualified(user_ids: List[str], contest_id: str) -> bool:
    return dispatch([
        build_message(NotificationType.DISQUALIFIED, user_id, contestId=contest_id)
        for user_id in user_ids
    ])


def notify_finalist(finalists: List[Dict[str, Any]], contest_id: str) -> bool:
    """finalists: dicts with userId, submissionId and rank."""
    return dispatch([
        build_message(
            NotificationType.FINALIST, f['userId'],
            contestId=contest_id, submissionId=f['submissionId'], rank=f['rank']
        )
        for f in finalists
        if f.get('userId')
    ])


def describe(message: Dict[str, Any]) -> Optional[str]:
    """Short human-readable form, used in logs by the SES sender."""
    if not message or 'type' not in message:
        return None
    return f"{message['type']} for {message.get('userId', 'unknown')}"

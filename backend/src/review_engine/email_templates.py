"""
Plain-text email bodies for notification messages.
"""
from typing import Dict, Any

from .config import config
from .models import NotificationType, VerdictDecision


def _assigned(data: Dict[str, Any]) -> Dict[str, str]:
    count = data.get('assignmentCount', 0)
    return {
        'subject': f"You have {count} peer reviews to complete",
        'text': (
            f"You have been assigned {count} submissions to review.\n\n"
            f"Please complete your reviews before {data.get('deadline')}.\n"
            f"Submissions you do not review in time count against your evaluator standing.\n\n"
            f"Start reviewing: {config.SITE_URL}/dashboard/peer-review-tasks"
        )
    }


def _deadline_warning(data: Dict[str, Any]) -> Dict[str, str]:
    count = data.get('pendingCount', 0)
    return {
        'subject': 'Reminder: peer reviews due in 24 hours',
        'text': (
            f"You still have {count} pending review(s) due {data.get('deadline')}.\n\n"
            f"Finish them here: {config.SITE_URL}/dashboard/peer-review-tasks"
        )
    }


def _verdict(data: Dict[str, Any]) -> Dict[str, str]:
    decision = data.get('decision')
    if decision == VerdictDecision.REINSTATED:
        subject = 'Your submission has been reinstated'
    elif decision == VerdictDecision.INCOMPLETE:
        subject = 'Your peer verification could not be completed'
    else:
        subject = 'Your peer verification result is ready'
    text = data.get('message') or ''
    if data.get('overridden'):
        text += "\n\nThis result was set by a contest administrator."
    text += f"\n\nView details: {config.SITE_URL}/contest/screening-results/{data.get('submissionId')}"
    return {'subject': subject, 'text': text}


def _disqualified(data: Dict[str, Any]) -> Dict[str, str]:
    return {
        'subject': 'Your submission has been disqualified',
        'text': (
            "Your submission was disqualified because you did not complete all "
            "of your assigned peer reviews before the deadline."
        )
    }


def _finalist(data: Dict[str, Any]) -> Dict[str, str]:
    return {
        'subject': "Congratulations, you're a finalist!",
        'text': (
            f"Your submission placed #{data.get('rank')} in peer review and advances to public voting.\n\n"
            f"{config.SITE_URL}"
        )
    }


TEMPLATES = {
    NotificationType.ASSIGNED: _assigned,
    NotificationType.DEADLINE_WARNING: _deadline_warning,
    NotificationType.VERDICT: _verdict,
    NotificationType.DISQUALIFIED: _disqualified,
    NotificationType.FINALIST: _finalist,
}


def render_email(message: Dict[str, Any]) -> Dict[str, str]:
    """
    Render a notification message into {'subject', 'text'}.

    Raises:
        KeyError: unknown notification type
    """
    return TEMPLATES[message['type']](message.get('data') or {})

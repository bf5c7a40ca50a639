"""
Configuration module for the peer-review engine.
Loads all environment variables needed by the Lambda handlers and services.
"""
import os


class Config:
    """Centralized configuration from environment variables."""

    # AWS Region
    AWS_REGION = os.environ.get('AWS_REGION', 'us-east-1')

    # Logging & access
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    ADMIN_GROUP = os.environ.get('ADMIN_GROUP', 'admin')

    # DynamoDB Tables
    SUBMISSIONS_TABLE = os.environ.get('SUBMISSIONS_TABLE', '')
    ASSIGNMENTS_TABLE = os.environ.get('ASSIGNMENTS_TABLE', '')
    REVIEWS_TABLE = os.environ.get('REVIEWS_TABLE', '')
    USERS_TABLE = os.environ.get('USERS_TABLE', '')
    CONTESTS_TABLE = os.environ.get('CONTESTS_TABLE', '')
    AUDIT_LOGS_TABLE = os.environ.get('AUDIT_LOGS_TABLE', '')
    AI_SCREENINGS_TABLE = os.environ.get('AI_SCREENINGS_TABLE', '')

    # SQS Queues
    SCORING_QUEUE_URL = os.environ.get('SCORING_QUEUE_URL', '')
    NOTIFICATION_QUEUE_URL = os.environ.get('NOTIFICATION_QUEUE_URL', '')

    # SES
    SES_SENDER = os.environ.get('SES_SENDER', 'noreply@example.com')
    SITE_URL = os.environ.get('SITE_URL', 'http://localhost:3000')

    # Assignment Configuration
    REVIEWS_PER_REVIEWER = int(os.environ.get('REVIEWS_PER_REVIEWER', '10'))
    DEADLINE_DAYS = int(os.environ.get('DEADLINE_DAYS', '7'))
    DEADLINE_WARNING_HOURS = int(os.environ.get('DEADLINE_WARNING_HOURS', '24'))
    VERIFICATION_REVIEWER_COUNT = int(os.environ.get('VERIFICATION_REVIEWER_COUNT', '10'))

    # Expired-assignment reassignment and stalled verification rounds
    REASSIGN_LOOKBACK_DAYS = int(os.environ.get('REASSIGN_LOOKBACK_DAYS', '30'))
    REASSIGN_MAX_RECENT_EXPIRED = int(os.environ.get('REASSIGN_MAX_RECENT_EXPIRED', '2'))
    VERIFICATION_MAX_DAYS = int(os.environ.get('VERIFICATION_MAX_DAYS', '14'))
    VERIFICATION_MIN_VOTES = int(os.environ.get('VERIFICATION_MIN_VOTES', '8'))

    # Review payload limits
    COMMENT_MAX_LENGTH = int(os.environ.get('COMMENT_MAX_LENGTH', '100'))
    OVERRIDE_JUSTIFICATION_MIN_LENGTH = int(os.environ.get('OVERRIDE_JUSTIFICATION_MIN_LENGTH', '20'))
    REASSIGN_JUSTIFICATION_MIN_LENGTH = int(os.environ.get('REASSIGN_JUSTIFICATION_MIN_LENGTH', '10'))

    # Scoring Configuration
    TRIMMED_MEAN_MIN_RATINGS = int(os.environ.get('TRIMMED_MEAN_MIN_RATINGS', '5'))
    REINSTATE_THRESHOLD = float(os.environ.get('REINSTATE_THRESHOLD', '70'))
    ELIMINATE_THRESHOLD = float(os.environ.get('ELIMINATE_THRESHOLD', '70'))

    # Integrity Configuration
    MINORITY_PENALTY_THRESHOLD = float(os.environ.get('MINORITY_PENALTY_THRESHOLD', '30'))
    INTEGRITY_FLAG_THRESHOLD = int(os.environ.get('INTEGRITY_FLAG_THRESHOLD', '-20'))
    QUALIFICATION_MIN_COMPLETED = int(os.environ.get('QUALIFICATION_MIN_COMPLETED', '3'))

    # Phase end
    FINALIST_COUNT = int(os.environ.get('FINALIST_COUNT', '100'))


config = Config()

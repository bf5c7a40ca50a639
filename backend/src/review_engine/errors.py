"""
Error taxonomy for the peer-review engine.
Each error carries the HTTP status code its message is surfaced with.
"""


class ReviewEngineError(Exception):
    """Base class for engine errors with a user-facing message."""
    status_code = 500
    error_type = 'Internal'

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(ReviewEngineError):
    status_code = 404
    error_type = 'NotFound'


class Forbidden(ReviewEngineError):
    status_code = 403
    error_type = 'Forbidden'


class Conflict(ReviewEngineError):
    """State-machine violation: wrong status, expired, duplicate."""
    status_code = 409
    error_type = 'Conflict'


class ValidationFailed(ReviewEngineError):
    status_code = 400
    error_type = 'ValidationFailed'


class Internal(ReviewEngineError):
    """Storage or transport failure."""
    status_code = 500
    error_type = 'Internal'

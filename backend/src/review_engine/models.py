"""
Status constants for the peer-review engine.
Assignment lifecycle: PENDING -> DONE | EXPIRED (terminal, one-directional)
"""


class SubmissionStatus:
    """Submission lifecycle statuses."""
    SUBMITTED = 'SUBMITTED'
    REINSTATED = 'REINSTATED'
    DISQUALIFIED = 'DISQUALIFIED'
    ELIMINATED = 'ELIMINATED'
    ELIMINATED_ACCEPTED = 'ELIMINATED_ACCEPTED'  # Author accepted the AI elimination
    PEER_VERIFICATION_PENDING = 'PEER_VERIFICATION_PENDING'
    FINALIST = 'FINALIST'

    # Only these may receive review assignments
    ELIGIBLE = (SUBMITTED, REINSTATED)
    # States an admin verdict override may act on
    VERIFICATION = (PEER_VERIFICATION_PENDING, REINSTATED, ELIMINATED)


class AssignmentStatus:
    """Assignment statuses."""
    PENDING = 'PENDING'
    DONE = 'DONE'
    EXPIRED = 'EXPIRED'


class ReviewMode:
    """Review payload modes."""
    CRITERIA = 'CRITERIA'  # Contest peer review: four 1-5 scores
    DECISION = 'DECISION'  # Peer verification: ELIMINATE / REINSTATE


class Decision:
    """Binary verification decisions."""
    ELIMINATE = 'ELIMINATE'
    REINSTATE = 'REINSTATE'

    ALL = (ELIMINATE, REINSTATE)


class VerdictDecision:
    """Verification round outcomes."""
    REINSTATED = 'REINSTATED'
    ELIMINATED_CONFIRMED = 'ELIMINATED_CONFIRMED'
    AI_DECISION_UPHELD = 'AI_DECISION_UPHELD'
    # Round closed without enough votes
    INCOMPLETE = 'INCOMPLETE'


class OverrideOutcome:
    """Outcomes an admin may impose on a verification verdict."""
    REINSTATED = 'REINSTATED'
    ELIMINATED = 'ELIMINATED'
    AI_DECISION_UPHELD = 'AI_DECISION_UPHELD'

    ALL = (REINSTATED, ELIMINATED, AI_DECISION_UPHELD)


class ScreeningStatus:
    """AI screening results (ground truth for control items)."""
    PASSED = 'PASSED'
    FAILED = 'FAILED'


class ContestPhase:
    """Contest phases relevant to the review engine."""
    SUBMISSION = 'SUBMISSION'
    AI_FILTERING = 'AI_FILTERING'
    PEER_REVIEW = 'PEER_REVIEW'
    PUBLIC_VOTING = 'PUBLIC_VOTING'
    CLOSED = 'CLOSED'

    NEXT = {
        SUBMISSION: AI_FILTERING,
        AI_FILTERING: PEER_REVIEW,
        PEER_REVIEW: PUBLIC_VOTING,
        PUBLIC_VOTING: CLOSED,
    }


class NotificationType:
    """Notification message types sent to the notification queue."""
    ASSIGNED = 'ASSIGNED'
    DEADLINE_WARNING = 'DEADLINE_WARNING'
    VERDICT = 'VERDICT'
    DISQUALIFIED = 'DISQUALIFIED'
    FINALIST = 'FINALIST'


CRITERIA = ('clarity', 'argument', 'style', 'moralDepth')

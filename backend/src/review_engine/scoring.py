"""
Score aggregation for completed review rounds.

CRITERIA rounds: per-criterion (trimmed) means -> overall peer score.
DECISION rounds: vote tally -> verification verdict, then integrity scoring.

Both aggregations are pure functions of the DONE reviews, so re-running a
job (SQS redelivery, manual retry) rewrites the same values.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Dict, Any, Optional, Tuple

from .config import config
from .errors import NotFound, ValidationFailed
from .integrity import update_integrity_scores
from .logging import logger
from .models import (
    AssignmentStatus, ReviewMode, Decision, SubmissionStatus, VerdictDecision, CRITERIA
)
from .notifications import notify_verdict
from .queue import ScoringJobType
from .store import get_store
from .utils import utc_now, to_iso


def round_half_up(value: float, places: int) -> float:
    """Round halves away from zero for positive values (2.25 -> 2.3), not to even."""
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def trimmed_mean(values: List[float]) -> float:
    """
    Mean of the values; with TRIMMED_MEAN_MIN_RATINGS or more values, one
    minimum and one maximum are dropped first.
    """
    if not values:
        return 0.0
    if len(values) < config.TRIMMED_MEAN_MIN_RATINGS:
        return sum(values) / len(values)
    trimmed = sorted(values)[1:-1]
    return sum(trimmed) / len(trimmed)


def overall_score(means: Dict[str, float]) -> float:
    """Average of the four criterion means, rounded to 2 decimal places."""
    return round_half_up(sum(means[c] for c in CRITERIA) / len(CRITERIA), 2)


def criterion_means(reviews: List[Dict[str, Any]]) -> Tuple[Dict[str, float], bool]:
    used_trimmed = len(reviews) >= config.TRIMMED_MEAN_MIN_RATINGS
    means = {
        c: trimmed_mean([r[c] for r in reviews if r.get(c) is not None])
        for c in CRITERIA
    }
    return means, used_trimmed


def done_reviews(assignments: List[Dict[str, Any]], store) -> List[Dict[str, Any]]:
    """Reviews behind the DONE assignments, ordered by assignmentId."""
    done_ids = sorted(a['assignmentId'] for a in assignments if a.get('status') == AssignmentStatus.DONE)
    if not done_ids:
        return []
    reviews = store.list_reviews(done_ids)
    return sorted(reviews, key=lambda r: r['assignmentId'])


def calculate_peer_score(submission_id: str, store=None, now=None) -> Optional[float]:
    """
    Compute and store scorePeer/scoreDetails for a submission.

    Returns:
        The overall score, or None when the submission has no reviews (nothing is written)
    """
    store = store or get_store()
    logger.info(f"Calculating peer score for submission {submission_id}")

    assignments = [
        a for a in store.list_assignments_by_submission(submission_id)
        if a.get('mode', ReviewMode.CRITERIA) == ReviewMode.CRITERIA
    ]
    reviews = done_reviews(assignments, store)
    if not reviews:
        logger.warning(f"No reviews found for submission {submission_id}; score not written")
        return None

    means, used_trimmed = criterion_means(reviews)
    score = overall_score(means)
    details = {
        **{c: round_half_up(m, 2) for c, m in means.items()},
        'reviewCount': len(reviews),
        'usedTrimmedMean': used_trimmed,
    }

    store.update_submission_score(submission_id, score, details, to_iso(now or utc_now()))
    logger.info(
        f"Peer score {score:.2f} stored for submission {submission_id} "
        f"({len(reviews)} reviews, {'trimmed' if used_trimmed else 'simple'} mean)"
    )
    return score


def aggregate_votes(reviews: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Tally decisions over the votes actually cast (expired assignments never
    enter the denominator). completedAt is the latest review time, so the
    same reviews always produce the same breakdown.
    """
    eliminate = sum(1 for r in reviews if r.get('decision') == Decision.ELIMINATE)
    reinstate = sum(1 for r in reviews if r.get('decision') == Decision.REINSTATE)
    total = eliminate + reinstate

    return {
        'totalVotes': total,
        'eliminateVotes': eliminate,
        'reinstateVotes': reinstate,
        'eliminatePercentage': round_half_up(eliminate / total * 100, 1) if total else 0.0,
        'reinstatePercentage': round_half_up(reinstate / total * 100, 1) if total else 0.0,
        'completedAt': max((r['createdAt'] for r in reviews if r.get('createdAt')), default=None),
    }


def determine_outcome(breakdown: Dict[str, Any]) -> Dict[str, str]:
    """
    Without a clear consensus the AI decision stands and the submission
    stays eliminated.
    """
    if breakdown['reinstatePercentage'] >= config.REINSTATE_THRESHOLD:
        return {
            'decision': VerdictDecision.REINSTATED,
            'newStatus': SubmissionStatus.REINSTATED,
            'message': 'Peer verification overturned AI elimination. Your submission has been reinstated.',
        }

    if breakdown['eliminatePercentage'] >= config.ELIMINATE_THRESHOLD:
        return {
            'decision': VerdictDecision.ELIMINATED_CONFIRMED,
            'newStatus': SubmissionStatus.ELIMINATED,
            'message': 'Peer verification confirmed AI elimination decision.',
        }

    return {
        'decision': VerdictDecision.AI_DECISION_UPHELD,
        'newStatus': SubmissionStatus.ELIMINATED,
        'message': 'AI decision upheld due to lack of clear consensus among reviewers.',
    }


def build_verdict(breakdown: Dict[str, Any], outcome: Dict[str, str]) -> Dict[str, Any]:
    return {
        'decision': outcome['decision'],
        'totalVotes': breakdown['totalVotes'],
        'eliminateVotes': breakdown['eliminateVotes'],
        'reinstateVotes': breakdown['reinstateVotes'],
        'eliminatePercentage': breakdown['eliminatePercentage'],
        'reinstatePercentage': breakdown['reinstatePercentage'],
        'completedAt': breakdown['completedAt'],
        'message': outcome['message'],
    }


def calculate_verification_result(submission_id: str, store=None, now=None) -> Optional[Dict[str, Any]]:
    """
    Compute the verdict of a verification round (round id = contested submission id),
    store it with the new status, score the round's reviewers and notify the author.

    Returns:
        The stored verdict, the existing verdict if an admin override is in place,
        or None when no votes have been cast
    """
    store = store or get_store()
    now = now or utc_now()
    logger.info(f"Calculating verification result for submission {submission_id}")

    submission = store.get_submission(submission_id)
    if not submission:
        raise NotFound('Submission not found')

    existing = submission.get('peerVerificationResult') or {}
    if existing.get('adminOverride'):
        logger.info(f"Submission {submission_id} has an admin override; verdict not recomputed")
        return existing
    if existing.get('decision') == VerdictDecision.INCOMPLETE:
        logger.info(f"Verification round {submission_id} was closed as INCOMPLETE; verdict not recomputed")
        return existing

    reviews = done_reviews(store.list_assignments_by_round(submission_id), store)
    contested_reviews = [r for r in reviews if r.get('submissionId') == submission_id]

    breakdown = aggregate_votes(contested_reviews)
    if breakdown['totalVotes'] == 0:
        logger.warning(f"No completed votes for submission {submission_id}; verdict not written")
        return None
    logger.info(f"Vote breakdown for {submission_id}: {breakdown}")

    # Control/contested classification must see statuses from before the verdict write
    statuses = {submission_id: submission.get('status')}
    for review in reviews:
        sid = review['submissionId']
        if sid not in statuses:
            statuses[sid] = (store.get_submission(sid) or {}).get('status')

    outcome = determine_outcome(breakdown)
    verdict = build_verdict(breakdown, outcome)
    reinstated = outcome['newStatus'] == SubmissionStatus.REINSTATED

    written = store.write_verification_result(
        submission_id, outcome['newStatus'], verdict, reinstated, to_iso(now)
    )
    if not written:
        logger.info(f"Verdict for {submission_id} was overridden concurrently; leaving it in place")
        return (store.get_submission(submission_id) or {}).get('peerVerificationResult')

    logger.info(f"Submission {submission_id} -> {outcome['newStatus']} ({outcome['decision']})")
    if reinstated:
        logger.info(f"Submission {submission_id} reinstated; flagged for phase re-entry")

    update_integrity_scores(
        submission_id, breakdown, reviews=reviews, statuses=statuses, store=store, now=now
    )

    if submission.get('userId'):
        notify_verdict(submission['userId'], submission_id, outcome['decision'], outcome['message'])

    return verdict


def process_scoring_job(job: Dict[str, Any], store=None) -> Any:
    """
    Run one aggregation job from the scoring queue.

    Raises:
        ValidationFailed: malformed job
    """
    job_type = job.get('type')
    submission_id = job.get('submissionId')
    if not submission_id:
        raise ValidationFailed('Scoring job is missing submissionId')

    if job_type == ScoringJobType.PEER_SCORE:
        return calculate_peer_score(submission_id, store=store)
    if job_type == ScoringJobType.VERIFICATION:
        return calculate_verification_result(submission_id, store=store)
    raise ValidationFailed(f'Unknown scoring job type: {job_type}')

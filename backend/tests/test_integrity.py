"""
Tests for reviewer integrity scoring and qualified-evaluator status.
"""
import pytest

from test_reviews import add_assignment
from test_scoring import breakdown


class TestIntegrityDelta:
    """Tests for calculate_integrity_delta."""

    def test_control_ai_failed_reviewer_eliminates(self):
        from review_engine.integrity import calculate_integrity_delta
        assert calculate_integrity_delta('ELIMINATE', True, 'FAILED', breakdown(5, 5)) == 10

    def test_control_ai_passed_reviewer_reinstates(self):
        from review_engine.integrity import calculate_integrity_delta
        assert calculate_integrity_delta('REINSTATE', True, 'PASSED', breakdown(5, 5)) == 10

    def test_control_ai_passed_reviewer_eliminates(self):
        from review_engine.integrity import calculate_integrity_delta
        assert calculate_integrity_delta('ELIMINATE', True, 'PASSED', breakdown(5, 5)) == -5

    def test_control_without_ground_truth(self):
        from review_engine.integrity import calculate_integrity_delta
        assert calculate_integrity_delta('ELIMINATE', True, None, breakdown(5, 5)) == 0

    def test_contested_majority(self):
        from review_engine.integrity import calculate_integrity_delta
        assert calculate_integrity_delta('REINSTATE', False, None, breakdown(8, 2)) == 5

    def test_contested_small_minority(self):
        """Majority REINSTATE at 80%, reviewer in the 20% minority."""
        from review_engine.integrity import calculate_integrity_delta
        assert calculate_integrity_delta('ELIMINATE', False, None, breakdown(8, 2)) == -3

    def test_contested_reasonable_minority(self):
        """35% minority draws no penalty."""
        from review_engine.integrity import calculate_integrity_delta

        votes = breakdown(13, 7)
        assert votes['eliminatePercentage'] == 35.0
        assert calculate_integrity_delta('ELIMINATE', False, None, votes) == 0

    def test_majority_is_simple_majority(self):
        """60% reinstate: verdict upholds the AI, yet reinstate voters are the majority."""
        from review_engine.integrity import calculate_integrity_delta
        from review_engine.scoring import determine_outcome

        votes = breakdown(6, 4)
        assert determine_outcome(votes)['decision'] == 'AI_DECISION_UPHELD'
        assert calculate_integrity_delta('REINSTATE', False, None, votes) == 5

    def test_even_split_majority_is_eliminate(self):
        from review_engine.integrity import calculate_integrity_delta
        assert calculate_integrity_delta('ELIMINATE', False, None, breakdown(5, 5)) == 5


class TestControlClassification:
    """Tests for is_control_item."""

    def test_round_submission_is_contested(self):
        from review_engine.integrity import is_control_item
        assert is_control_item('x', 'x', 'REINSTATED') is False

    def test_pending_submission_is_contested(self):
        from review_engine.integrity import is_control_item
        assert is_control_item('y', 'x', 'PEER_VERIFICATION_PENDING') is False

    def test_other_statuses_are_controls(self):
        from review_engine.integrity import is_control_item
        assert is_control_item('y', 'x', 'SUBMITTED') is True
        assert is_control_item('y', 'x', 'ELIMINATED_ACCEPTED') is True


class TestUpdateIntegrityScores:
    """Tests for update_integrity_scores."""

    def seed(self, store, now, decision='ELIMINATE'):
        store.add_submission('x', 'author', status='PEER_VERIFICATION_PENDING')
        store.add_submission('ctrl', 'other', status='ELIMINATED_ACCEPTED')
        store.add_screening('ctrl', 'FAILED')
        store.add_user('rev', integrityScore=0)
        add_assignment(store, now, 'k1', 'ctrl', 'rev', round_id='x', mode='DECISION', status='DONE')
        store.reviews['k1'] = {
            'assignmentId': 'k1', 'submissionId': 'ctrl', 'reviewerUserId': 'rev',
            'roundId': 'x', 'mode': 'DECISION', 'decision': decision,
        }

    def test_applies_delta_once(self, store, now):
        from review_engine.integrity import update_integrity_scores

        self.seed(store, now)

        first = update_integrity_scores('x', breakdown(5, 5), store=store, now=now)
        second = update_integrity_scores('x', breakdown(5, 5), store=store, now=now)

        assert first['scored'] == 1
        assert first['deltas'] == {'k1': 10}
        assert second['scored'] == 0
        assert second['alreadyScored'] == 1
        assert store.users['rev']['integrityScore'] == 10
        assert store.reviews['k1']['integrityDelta'] == 10

    def test_stale_review_copy_cannot_double_count(self, store, now):
        """Two passes over the same loaded reviews still score each review once."""
        from review_engine.integrity import update_integrity_scores

        self.seed(store, now)
        reviews = [dict(store.reviews['k1'])]

        update_integrity_scores('x', breakdown(5, 5), reviews=reviews, store=store, now=now)
        update_integrity_scores('x', breakdown(5, 5), reviews=reviews, store=store, now=now)

        assert store.users['rev']['integrityScore'] == 10

    def test_uses_status_snapshot(self, store, now):
        """A snapshot taken before the verdict write decides control vs contested."""
        from review_engine.integrity import update_integrity_scores

        self.seed(store, now, decision='REINSTATE')
        # ctrl was itself awaiting verification when the round finished
        summary = update_integrity_scores(
            'x', breakdown(8, 2), statuses={'ctrl': 'PEER_VERIFICATION_PENDING'}, store=store, now=now
        )

        assert summary['deltas'] == {'k1': 5}


class TestQualifiedEvaluator:
    """Tests for check_qualified_evaluator_status."""

    def seed(self, store, now, completed, score, qualified=False):
        store.add_user('rev', integrityScore=score, qualifiedEvaluator=qualified)
        for i in range(completed):
            add_assignment(store, now, f'a{i}', f's{i}', 'rev', status='DONE')

    def test_two_completed_not_qualified(self, store, now):
        from review_engine.integrity import check_qualified_evaluator_status

        self.seed(store, now, completed=2, score=10)
        result = check_qualified_evaluator_status('rev', store=store, now=now)

        assert result['qualified'] is False
        assert store.users['rev']['qualifiedEvaluator'] is False

    def test_negative_score_not_qualified(self, store, now):
        from review_engine.integrity import check_qualified_evaluator_status

        self.seed(store, now, completed=3, score=-1)
        assert check_qualified_evaluator_status('rev', store=store, now=now)['qualified'] is False

    def test_three_completed_zero_score_qualified(self, store, now):
        from review_engine.integrity import check_qualified_evaluator_status

        self.seed(store, now, completed=3, score=0)
        result = check_qualified_evaluator_status('rev', store=store, now=now)

        assert result['qualified'] is True
        assert result['changed'] is True
        assert store.users['rev']['qualifiedEvaluator'] is True

    def test_unchanged_status_not_written(self, store, now):
        from review_engine.integrity import check_qualified_evaluator_status

        self.seed(store, now, completed=3, score=5, qualified=True)
        result = check_qualified_evaluator_status('rev', store=store, now=now)

        assert result['changed'] is False
        assert 'updatedAt' not in store.users['rev']

    def test_revoked_when_score_drops(self, store, now):
        from review_engine.integrity import check_qualified_evaluator_status

        self.seed(store, now, completed=4, score=-5, qualified=True)
        result = check_qualified_evaluator_status('rev', store=store, now=now)

        assert result['changed'] is True
        assert store.users['rev']['qualifiedEvaluator'] is False

    def test_low_score_flagged_not_banned(self, store, now):
        from review_engine.integrity import check_qualified_evaluator_status

        self.seed(store, now, completed=3, score=-25)
        result = check_qualified_evaluator_status('rev', store=store, now=now)

        assert result['flagged'] is True
        assert store.users['rev']['flaggedForReview'] is True
        assert not store.users['rev'].get('isBanned')

    def test_threshold_itself_not_flagged(self, store, now):
        from review_engine.integrity import check_qualified_evaluator_status

        self.seed(store, now, completed=3, score=-20)
        check_qualified_evaluator_status('rev', store=store, now=now)

        assert 'flaggedForReview' not in store.users['rev']

    def test_unknown_user(self, store, now):
        from review_engine.integrity import check_qualified_evaluator_status
        assert check_qualified_evaluator_status('ghost', store=store, now=now) is None

"""
Tests for padel score validation (classic games and express points).
"""

import pytest
from pydantic import ValidationError

from bracket_engine.schemas import MatchFormatConfig, SetScore, TiebreakScore
from bracket_engine.services.score_validator import (
    ScoreInvalid,
    ScoreValid,
    game_totals,
    is_valid_set_score,
    sets_needed_to_win,
    validate_classic_score,
    validate_express_score,
    validate_score,
)


def _sets(*scores, tiebreaks=None):
    tiebreaks = tiebreaks or {}
    result = []
    for index, (a, b) in enumerate(scores):
        tb = tiebreaks.get(index)
        result.append(SetScore(team1=a, team2=b, tiebreak=TiebreakScore(team1=tb[0], team2=tb[1]) if tb else None))
    return result


class TestSetScores:
    def test_regular_wins_either_order(self):
        for loser in range(0, 5):
            assert is_valid_set_score(6, loser)
            assert is_valid_set_score(loser, 6)

    def test_six_five_is_not_a_finished_set(self):
        assert not is_valid_set_score(6, 5)

    def test_extended_and_tiebreak_sets(self):
        assert is_valid_set_score(7, 5)
        assert is_valid_set_score(6, 7)

    def test_extended_sets_rejected_without_tiebreak(self):
        assert not is_valid_set_score(7, 5, allow_tiebreak=False)
        assert not is_valid_set_score(7, 6, allow_tiebreak=False)

    def test_custom_games_per_set(self):
        assert is_valid_set_score(4, 2, games_per_set=4)
        assert is_valid_set_score(5, 4, games_per_set=4)
        assert not is_valid_set_score(4, 3, games_per_set=4)

    def test_sets_needed(self):
        assert sets_needed_to_win(1) == 1
        assert sets_needed_to_win(3) == 2
        assert sets_needed_to_win(5) == 3

    def test_sets_needed_even_counts(self):
        assert sets_needed_to_win(2) == 2
        assert sets_needed_to_win(4) == 3

    def test_negative_games_rejected_by_model(self):
        with pytest.raises(ValidationError):
            SetScore(team1=6, team2=-1)
        with pytest.raises(ValidationError):
            TiebreakScore(team1=7, team2=-2)


class TestClassicMatch:
    def test_straight_sets(self):
        result = validate_classic_score(_sets((6, 2), (6, 3)))
        assert result == ScoreValid(winner=1, sets_won=(2, 0))

    def test_three_sets_with_tiebreak(self):
        result = validate_classic_score(_sets((6, 2), (3, 6), (7, 6), tiebreaks={2: (7, 5)}))
        assert result == ScoreValid(winner=1, sets_won=(2, 1))

    def test_team2_wins(self):
        result = validate_classic_score(_sets((4, 6), (6, 7), tiebreaks={1: (3, 7)}))
        assert result == ScoreValid(winner=2, sets_won=(0, 2))

    def test_six_all_is_invalid(self):
        result = validate_classic_score(_sets((6, 6)))
        assert isinstance(result, ScoreInvalid)
        assert "Invalid set 1 score" in result.reason

    def test_eight_six_rejected_when_tiebreak_disallowed(self):
        result = validate_classic_score(_sets((8, 6), (6, 0)), allow_tiebreak=False)
        assert not result.ok

    def test_tiebreak_set_requires_tiebreak_score(self):
        result = validate_classic_score(_sets((7, 6), (6, 3)))
        assert not result.ok
        assert "tiebreak score required" in result.reason

    def test_tiebreak_score_needs_seven_points(self):
        result = validate_classic_score(_sets((7, 6), (6, 3), tiebreaks={0: (6, 4)}))
        assert not result.ok
        assert "Invalid tiebreak score" in result.reason

    def test_tiebreak_score_needs_two_point_margin(self):
        result = validate_classic_score(_sets((7, 6), (6, 3), tiebreaks={0: (8, 7)}))
        assert not result.ok

    def test_long_tiebreak_accepted(self):
        result = validate_classic_score(_sets((7, 6), (6, 3), tiebreaks={0: (12, 10)}))
        assert result.ok

    def test_set_after_match_decided(self):
        result = validate_classic_score(_sets((6, 1), (6, 2), (6, 3)))
        assert not result.ok
        assert "already decided after set 2" in result.reason

    def test_incomplete_match(self):
        result = validate_classic_score(_sets((6, 1), (2, 6)))
        assert not result.ok
        assert "incomplete" in result.reason

    def test_empty_input(self):
        assert not validate_classic_score([]).ok

    def test_too_many_sets(self):
        result = validate_classic_score(_sets((6, 1), (1, 6), (6, 1), (6, 1)))
        assert not result.ok
        assert "Maximum 3 sets" in result.reason


class TestExpressMatch:
    def test_single_set_win(self):
        result = validate_express_score(_sets((8, 5)), max_points=8, total_sets=1)
        assert result == ScoreValid(winner=1, sets_won=(1, 0))

    def test_both_at_target_is_invalid(self):
        result = validate_express_score(_sets((8, 8)), max_points=8, total_sets=1)
        assert not result.ok
        assert "Both teams cannot have 8 points" in result.reason

    def test_above_target_is_invalid(self):
        result = validate_express_score(_sets((9, 5)), max_points=8, total_sets=1)
        assert not result.ok
        assert "Maximum score is 8" in result.reason

    def test_nobody_reached_target(self):
        result = validate_express_score(_sets((7, 5)), max_points=8, total_sets=1)
        assert not result.ok

    def test_negative_losing_score_is_invalid(self):
        unchecked = [SetScore.model_construct(team1=8, team2=-3, tiebreak=None)]
        result = validate_express_score(unchecked, max_points=8, total_sets=1)
        assert not result.ok
        assert "cannot be negative" in result.reason

    def test_best_of_two_needs_both_sets(self):
        result = validate_express_score(_sets((8, 5), (3, 8)), max_points=8, total_sets=2)
        assert not result.ok
        assert "incomplete" in result.reason

    def test_best_of_three(self):
        result = validate_express_score(_sets((8, 5), (3, 8), (2, 8)), max_points=8, total_sets=3)
        assert result == ScoreValid(winner=2, sets_won=(1, 2))


class TestDispatch:
    def test_defaults_are_classic_best_of_three(self):
        assert validate_score(_sets((6, 2), (6, 3))).ok

    def test_express_format(self):
        match_format = MatchFormatConfig(sets=1, points_per_set=11)
        assert validate_score(_sets((11, 9)), match_format) == ScoreValid(winner=1, sets_won=(1, 0))
        assert not validate_score(_sets((6, 2)), match_format).ok

    def test_format_without_tiebreak(self):
        match_format = MatchFormatConfig(sets=3, games_per_set=6, tie_break=False)
        assert not validate_score(_sets((7, 5), (6, 2)), match_format).ok

    def test_tiebreak_allowed_when_unspecified(self):
        match_format = MatchFormatConfig(sets=3)
        assert validate_score(_sets((7, 5), (6, 2)), match_format).ok

    def test_single_set_classic(self):
        match_format = MatchFormatConfig(sets=1, games_per_set=9)
        assert validate_score(_sets((9, 4)), match_format).ok


class TestGameTotals:
    def test_sums_each_side(self):
        assert game_totals([{"team1": 6, "team2": 2}, {"team1": 3, "team2": 6}]) == (9, 8)

    def test_missing_and_malformed(self):
        assert game_totals(None) == (0, 0)
        assert game_totals([{"team1": "x", "team2": 4}, {"team1": 6, "team2": 1}]) == (6, 1)

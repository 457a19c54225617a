"""
Padel score validation for classic (games) and express (points) formats.

Classic, with G games per set (default 6):
  G-0 .. G-(G-2)        regular win
  (G+1)-(G-1)           extended win (tiebreak formats only)
  (G+1)-G               tiebreak win, requires a tiebreak score: first to 7, 2 clear

Express, with P points per set:
  P-0 .. P-(P-1)        first side to reach exactly P wins the set

Sets are read in order; once a side reaches ceil((S+1)/2) sets in a best-of-S
match any further set is an error, and running out of sets before that is
"incomplete". Pure functions, no side effects.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from bracket_engine.schemas import (
    DEFAULT_GAMES_PER_SET,
    DEFAULT_TOTAL_SETS,
    MatchFormatConfig,
    SetScore,
)

TIEBREAK_MIN_POINTS = 7
TIEBREAK_MIN_MARGIN = 2


@dataclass(frozen=True)
class ScoreValid:
    winner: int  # 1 | 2
    sets_won: Tuple[int, int]

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class ScoreInvalid:
    reason: str

    @property
    def ok(self) -> bool:
        return False


ScoreValidation = Union[ScoreValid, ScoreInvalid]


def sets_needed_to_win(total_sets: int) -> int:
    """Strict majority of total_sets: 2 of 3, 3 of 5, and 2 of 2 or 3 of 4 for even counts."""
    return total_sets // 2 + 1


def valid_winning_scores(games_per_set: int = DEFAULT_GAMES_PER_SET, allow_tiebreak: bool = True) -> List[Tuple[int, int]]:
    """Winner-first set scores accepted for a games_per_set format."""
    scores = [(games_per_set, loser) for loser in range(0, games_per_set - 1)]
    if allow_tiebreak:
        scores.append((games_per_set + 1, games_per_set - 1))
        scores.append((games_per_set + 1, games_per_set))
    return scores


def is_valid_set_score(
    team1_games: int,
    team2_games: int,
    games_per_set: int = DEFAULT_GAMES_PER_SET,
    allow_tiebreak: bool = True,
) -> bool:
    for a, b in valid_winning_scores(games_per_set, allow_tiebreak):
        if (team1_games, team2_games) in ((a, b), (b, a)):
            return True
    return False


def _is_tiebreak_set(team1_games: int, team2_games: int, games_per_set: int) -> bool:
    return {team1_games, team2_games} == {games_per_set, games_per_set + 1}


def _decide(team1_sets: int, team2_sets: int, needed: int) -> ScoreValidation:
    if team1_sets >= needed:
        return ScoreValid(winner=1, sets_won=(team1_sets, team2_sets))
    if team2_sets >= needed:
        return ScoreValid(winner=2, sets_won=(team1_sets, team2_sets))
    return ScoreInvalid(
        f"Match incomplete: need {needed} set(s) to win (current: {team1_sets}-{team2_sets})"
    )


def validate_classic_score(
    set_scores: Sequence[SetScore],
    games_per_set: int = DEFAULT_GAMES_PER_SET,
    total_sets: int = DEFAULT_TOTAL_SETS,
    allow_tiebreak: bool = True,
) -> ScoreValidation:
    if not set_scores:
        return ScoreInvalid("At least one set required")
    if len(set_scores) > total_sets:
        return ScoreInvalid(f"Maximum {total_sets} sets allowed")

    needed = sets_needed_to_win(total_sets)
    team1_sets = 0
    team2_sets = 0

    for index, s in enumerate(set_scores, start=1):
        if not is_valid_set_score(s.team1, s.team2, games_per_set, allow_tiebreak):
            accepted = ", ".join(f"{a}-{b}" for a, b in valid_winning_scores(games_per_set, allow_tiebreak))
            return ScoreInvalid(f"Invalid set {index} score: {s.team1}-{s.team2}. Valid scores: {accepted}")

        if _is_tiebreak_set(s.team1, s.team2, games_per_set):
            if s.tiebreak is None:
                return ScoreInvalid(
                    f"Set {index} is a tiebreak ({games_per_set + 1}-{games_per_set}), tiebreak score required"
                )
            high = max(s.tiebreak.team1, s.tiebreak.team2)
            low = min(s.tiebreak.team1, s.tiebreak.team2)
            if high < TIEBREAK_MIN_POINTS or high - low < TIEBREAK_MIN_MARGIN:
                return ScoreInvalid(
                    f"Invalid tiebreak score: {s.tiebreak.team1}-{s.tiebreak.team2}. "
                    f"Must be first to {TIEBREAK_MIN_POINTS} with {TIEBREAK_MIN_MARGIN}-point lead"
                )

        if s.team1 > s.team2:
            team1_sets += 1
        else:
            team2_sets += 1

        if (team1_sets >= needed or team2_sets >= needed) and index < len(set_scores):
            return ScoreInvalid(
                f"Match already decided after set {index}, but {len(set_scores)} sets provided"
            )

    return _decide(team1_sets, team2_sets, needed)


def validate_express_score(set_scores: Sequence[SetScore], max_points: int, total_sets: int) -> ScoreValidation:
    if not set_scores:
        return ScoreInvalid("At least one set required")
    if len(set_scores) > total_sets:
        return ScoreInvalid(f"Maximum {total_sets} set(s) allowed")

    needed = sets_needed_to_win(total_sets)
    team1_sets = 0
    team2_sets = 0

    for index, s in enumerate(set_scores, start=1):
        team1_wins = s.team1 == max_points and 0 <= s.team2 < max_points
        team2_wins = s.team2 == max_points and 0 <= s.team1 < max_points

        if not (team1_wins or team2_wins):
            if min(s.team1, s.team2) < 0:
                return ScoreInvalid(f"Set {index}: Scores cannot be negative")
            if s.team1 > max_points or s.team2 > max_points:
                return ScoreInvalid(f"Set {index}: Maximum score is {max_points} points")
            if s.team1 == max_points and s.team2 == max_points:
                return ScoreInvalid(f"Set {index}: Both teams cannot have {max_points} points")
            return ScoreInvalid(f"Set {index}: One team must reach {max_points} points to win")

        if team1_wins:
            team1_sets += 1
        else:
            team2_sets += 1

        if (team1_sets >= needed or team2_sets >= needed) and index < len(set_scores):
            return ScoreInvalid(
                f"Match already decided after set {index}, but {len(set_scores)} sets provided"
            )

    return _decide(team1_sets, team2_sets, needed)


def validate_score(set_scores: Sequence[SetScore], match_format: Optional[MatchFormatConfig] = None) -> ScoreValidation:
    """Validate against a bracket's match format; None means classic 6 games, best of 3, tiebreak allowed."""
    if match_format is not None and match_format.is_express:
        return validate_express_score(set_scores, match_format.points_per_set, match_format.sets)
    if match_format is None:
        return validate_classic_score(set_scores)
    return validate_classic_score(
        set_scores,
        games_per_set=match_format.games_per_set or DEFAULT_GAMES_PER_SET,
        total_sets=match_format.sets,
        allow_tiebreak=match_format.allows_tiebreak,
    )


def game_totals(set_scores: Optional[Iterable[Dict[str, Any]]]) -> Tuple[int, int]:
    """Sum games (or points) per side from stored set_scores JSON; malformed entries count as zero."""
    team1_games = 0
    team2_games = 0
    for s in set_scores or []:
        try:
            a = int(s.get("team1", 0))
            b = int(s.get("team2", 0))
        except (AttributeError, TypeError, ValueError):
            continue
        team1_games += a
        team2_games += b
    return team1_games, team2_games

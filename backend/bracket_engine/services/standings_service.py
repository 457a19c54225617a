"""
Standings are derived from match history and rewritten in full on every
recalculation.

Group stage (groups_knockout, round_robin): per group, ranked by points,
head-to-head wins, game difference, then games won.

Knockout: champion first, then teams eliminated later, then game difference.
Each team gets a round_reached label and points from KnockoutPointsConfig.
"""
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from functools import cmp_to_key
from typing import Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from bracket_engine.models.bracket import Bracket, BracketFormat
from bracket_engine.models.match import DECIDED_STATUSES, Match
from bracket_engine.models.standing import Standing
from bracket_engine.repositories.bracket_repository import BracketRepository, StandingInput
from bracket_engine.schemas import GroupsKnockoutConfig, KnockoutPointsConfig
from bracket_engine.services.bracket_config import load_config
from bracket_engine.services.result import Err, ErrorKind, Ok, Result, not_found
from bracket_engine.services.score_validator import game_totals

logger = logging.getLogger(__name__)

GROUP_FORMATS = (BracketFormat.groups_knockout.value, BracketFormat.round_robin.value)

CHAMPION = "Champion"
FINALIST = "Finalist"
SEMI_FINALIST = "Semi-finalist"
QUARTER_FINALIST = "Quarter-finalist"


@dataclass
class _Tally:
    team_id: int
    group_number: Optional[int] = None
    matches_played: int = 0
    matches_won: int = 0
    matches_lost: int = 0
    games_won: int = 0
    games_lost: int = 0
    total_points: int = 0
    last_round_lost: Optional[int] = None
    last_round_played: int = 0
    h2h_wins: Dict[int, int] = field(default_factory=lambda: defaultdict(int))

    @property
    def game_difference(self) -> int:
        return self.games_won - self.games_lost

    def record(self, opponent_id: int, games_for: int, games_against: int, won: bool, round_number: int) -> None:
        self.matches_played += 1
        self.games_won += games_for
        self.games_lost += games_against
        self.last_round_played = max(self.last_round_played, round_number)
        if won:
            self.matches_won += 1
            self.h2h_wins[opponent_id] += 1
        else:
            self.matches_lost += 1
            self.last_round_lost = round_number


def _counted(match: Match) -> bool:
    return (
        match.status in DECIDED_STATUSES
        and not match.is_bye
        and match.team1_id is not None
        and match.team2_id is not None
        and match.winner_team in (1, 2)
    )


def _apply(tallies: Dict[int, _Tally], match: Match) -> None:
    team1_games, team2_games = game_totals(match.set_scores)
    tallies[match.team1_id].record(match.team2_id, team1_games, team2_games, match.winner_team == 1, match.round_number)
    tallies[match.team2_id].record(match.team1_id, team2_games, team1_games, match.winner_team == 2, match.round_number)


# ============================================================================
# Group standings
# ============================================================================


def _compare_group(a: _Tally, b: _Tally) -> int:
    if a.total_points != b.total_points:
        return b.total_points - a.total_points
    a_wins_vs_b = a.h2h_wins.get(b.team_id, 0)
    b_wins_vs_a = b.h2h_wins.get(a.team_id, 0)
    if a_wins_vs_b != b_wins_vs_a:
        return b_wins_vs_a - a_wins_vs_b
    if a.game_difference != b.game_difference:
        return b.game_difference - a.game_difference
    return b.games_won - a.games_won


def compute_group_standings(
    matches: List[Match], existing: List[Standing], group_win_points: int = 3
) -> List[StandingInput]:
    """
    Rank every team within its current group.

    Group membership comes from the existing group standing rows; without
    any, from the teams appearing in group matches. A match only counts when
    both teams still belong to the match's group.
    """
    tallies: Dict[int, _Tally] = {}
    for standing in existing:
        if standing.team_id is not None and standing.group_number is not None:
            tallies[standing.team_id] = _Tally(team_id=standing.team_id, group_number=standing.group_number)

    group_matches = [m for m in matches if m.group_number is not None]
    if not tallies:
        for match in group_matches:
            for team_id in (match.team1_id, match.team2_id):
                if team_id is not None and team_id not in tallies:
                    tallies[team_id] = _Tally(team_id=team_id, group_number=match.group_number)

    for match in group_matches:
        if not _counted(match):
            continue
        t1, t2 = tallies.get(match.team1_id), tallies.get(match.team2_id)
        if t1 is None or t2 is None:
            continue
        if t1.group_number != match.group_number or t2.group_number != match.group_number:
            continue
        _apply(tallies, match)
        winner = t1 if match.winner_team == 1 else t2
        winner.total_points += group_win_points

    by_group: Dict[int, List[_Tally]] = defaultdict(list)
    for tally in tallies.values():
        by_group[tally.group_number].append(tally)

    rows: List[StandingInput] = []
    for group_number in sorted(by_group):
        ranked = sorted(sorted(by_group[group_number], key=lambda t: t.team_id), key=cmp_to_key(_compare_group))
        for index, tally in enumerate(ranked):
            rows.append(
                StandingInput(
                    team_id=tally.team_id,
                    group_number=group_number,
                    position=index + 1,
                    total_points=tally.total_points,
                    matches_played=tally.matches_played,
                    matches_won=tally.matches_won,
                    matches_lost=tally.matches_lost,
                    games_won=tally.games_won,
                    games_lost=tally.games_lost,
                    point_difference=tally.game_difference,
                )
            )
    return rows


# ============================================================================
# Knockout standings
# ============================================================================


def round_reached_label(tally: _Tally, total_rounds: int, champion_id: Optional[int]) -> str:
    if tally.team_id == champion_id:
        return CHAMPION
    if tally.last_round_lost is None:
        return f"Round {tally.last_round_played + 1}"
    rounds_from_final = total_rounds - tally.last_round_lost + 1
    return {1: FINALIST, 2: SEMI_FINALIST, 3: QUARTER_FINALIST}.get(rounds_from_final, f"Round {tally.last_round_lost}")


def knockout_points(label: str, round_number: int, points: KnockoutPointsConfig) -> int:
    fixed = {
        CHAMPION: points.winner,
        FINALIST: points.finalist,
        SEMI_FINALIST: points.semi_finalist,
        QUARTER_FINALIST: points.quarter_finalist,
    }
    if label in fixed:
        return fixed[label]
    return points.base_points + round_number * points.per_round_bonus


def compute_knockout_standings(
    matches: List[Match], points: Optional[KnockoutPointsConfig] = None
) -> List[StandingInput]:
    points = points or KnockoutPointsConfig()
    knockout = [m for m in matches if m.group_number is None]
    if not knockout:
        return []

    total_rounds = max(m.round_number for m in knockout)
    final = next((m for m in knockout if m.round_number == total_rounds and _counted(m)), None)
    champion_id = final.winner_team_id() if final is not None else None

    tallies: Dict[int, _Tally] = {}
    for match in knockout:
        if not _counted(match):
            continue
        for team_id in (match.team1_id, match.team2_id):
            tallies.setdefault(team_id, _Tally(team_id=team_id))
        _apply(tallies, match)

    def sort_key(t: _Tally):
        eliminated_round = t.last_round_lost if t.last_round_lost is not None else total_rounds + 1
        return (t.team_id != champion_id, -eliminated_round, -t.game_difference, t.team_id)

    rows: List[StandingInput] = []
    for index, tally in enumerate(sorted(tallies.values(), key=sort_key)):
        label = round_reached_label(tally, total_rounds, champion_id)
        reached = tally.last_round_lost if tally.last_round_lost is not None else tally.last_round_played + 1
        rows.append(
            StandingInput(
                team_id=tally.team_id,
                position=index + 1,
                total_points=knockout_points(label, reached, points),
                matches_played=tally.matches_played,
                matches_won=tally.matches_won,
                matches_lost=tally.matches_lost,
                games_won=tally.games_won,
                games_lost=tally.games_lost,
                point_difference=tally.game_difference,
                round_reached=label,
            )
        )
    return rows


# ============================================================================
# Service
# ============================================================================


class StandingsService:
    def __init__(self, repository: BracketRepository):
        self.repository = repository

    def recalculate(self, bracket: Bracket) -> List[Standing]:
        """Group-aware for group formats, knockout otherwise. Raises on persistence errors."""
        config = load_config(bracket) or GroupsKnockoutConfig()
        matches = self.repository.get_matches_by_bracket_id(bracket.id)
        if bracket.format in GROUP_FORMATS:
            existing = self.repository.get_standings(bracket.id)
            rows = compute_group_standings(matches, existing, config.group_win_points)
            return self.repository.upsert_standings(bracket.id, rows)
        rows = compute_knockout_standings(matches, config.knockout_points)
        return self.repository.upsert_standings(bracket.id, rows, prune=True)

    def get_standings(self, tournament_id: int, category_id: int) -> Result[List[Standing]]:
        bracket = self.repository.get_bracket(tournament_id, category_id)
        if bracket is None:
            return not_found("Bracket not found")
        return Ok(self.repository.get_standings(bracket.id))

    def calculate_standings(self, tournament_id: int, category_id: int) -> Result[List[Standing]]:
        """Recalculate a bracket's standings; group brackets are ranked per group."""
        bracket = self.repository.get_bracket(tournament_id, category_id)
        if bracket is None:
            return not_found("Bracket not found")
        try:
            return Ok(self.recalculate(bracket))
        except SQLAlchemyError as exc:
            logger.exception("Standings recalculation failed for bracket %s", bracket.id)
            return Err(ErrorKind.persistence_failure, str(exc))

    def calculate_group_standings(self, tournament_id: int, category_id: int) -> Result[List[Standing]]:
        bracket = self.repository.get_bracket(tournament_id, category_id)
        if bracket is None:
            return not_found("Bracket not found")
        config = load_config(bracket) or GroupsKnockoutConfig()
        try:
            rows = compute_group_standings(
                self.repository.get_matches_by_bracket_id(bracket.id),
                self.repository.get_standings(bracket.id),
                config.group_win_points,
            )
            return Ok(self.repository.upsert_standings(bracket.id, rows))
        except SQLAlchemyError as exc:
            logger.exception("Group standings recalculation failed for bracket %s", bracket.id)
            return Err(ErrorKind.persistence_failure, str(exc))

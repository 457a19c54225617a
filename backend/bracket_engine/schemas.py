"""
Typed request/response shapes shared by services and routes.

Bracket config is stored as JSON on Bracket.config but always handled through
GroupsKnockoutConfig here, so generation and validation never see a raw dict.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_GAMES_PER_SET = 6
DEFAULT_TOTAL_SETS = 3


class TiebreakScore(BaseModel):
    team1: int = Field(ge=0)
    team2: int = Field(ge=0)


class SetScore(BaseModel):
    """Games (classic) or points (express) won by each side in one set."""

    team1: int = Field(ge=0)
    team2: int = Field(ge=0)
    tiebreak: Optional[TiebreakScore] = None  # Only for (G+1)-G sets


class MatchFormatConfig(BaseModel):
    """
    Scoring format of a bracket.

    Express when points_per_set is set (first to N points per set); classic
    otherwise, with games_per_set defaulting to 6. Tiebreak sets are allowed
    unless tie_break is explicitly False.
    """

    sets: int = DEFAULT_TOTAL_SETS
    games_per_set: Optional[int] = None
    points_per_set: Optional[int] = None
    tie_break: Optional[bool] = None
    tie_break_at: Optional[int] = None

    @property
    def is_express(self) -> bool:
        return self.points_per_set is not None

    @property
    def allows_tiebreak(self) -> bool:
        if self.tie_break is not None:
            return self.tie_break
        if self.tie_break_at is not None:
            return self.tie_break_at > 0
        return True


class KnockoutPointsConfig(BaseModel):
    winner: int = 100
    finalist: int = 70
    semi_finalist: int = 50
    quarter_finalist: int = 30
    base_points: int = 10
    per_round_bonus: int = 5


class GroupsKnockoutConfig(BaseModel):
    group_count: int = 0
    teams_per_group: int = 0
    advancing_per_group: int = 2
    wildcard_count: int = 0  # Best runners-up from position advancing_per_group + 1
    match_format: Optional[MatchFormatConfig] = None
    group_win_points: int = 3
    knockout_points: KnockoutPointsConfig = Field(default_factory=KnockoutPointsConfig)


class GroupAssignment(BaseModel):
    group_number: int
    team_ids: List[int]  # In seed order


# ============================================================================
# Views
# ============================================================================


class BracketRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    tournament_id: int
    category_id: int
    format: str
    status: str
    config: Optional[Dict[str, Any]] = None
    seeding_method: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class MatchRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    bracket_id: int
    round_number: int
    match_number: int
    round_name: Optional[str] = None
    team1_id: Optional[int] = None
    team2_id: Optional[int] = None
    score_team1: Optional[int] = None
    score_team2: Optional[int] = None
    set_scores: Optional[List[Dict[str, Any]]] = None
    winner_team: Optional[int] = None
    next_match_id: Optional[int] = None
    next_match_position: Optional[int] = None
    group_number: Optional[int] = None
    status: str
    is_bye: bool = False
    version: int = 1


class StandingRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    bracket_id: int
    team_id: Optional[int] = None
    player_id: Optional[str] = None
    group_number: Optional[int] = None
    position: int
    total_points: int = 0
    matches_played: int = 0
    matches_won: int = 0
    matches_lost: int = 0
    games_won: int = 0
    games_lost: int = 0
    point_difference: int = 0
    round_reached: Optional[str] = None


class BracketWithMatches(BaseModel):
    bracket: BracketRead
    matches: List[MatchRead]
    standings: List[StandingRead] = Field(default_factory=list)


class GroupState(BaseModel):
    group_number: int
    group_name: str
    team_ids: List[int]
    matches: List[MatchRead]
    standings: List[StandingRead]


class GroupsState(BaseModel):
    bracket_id: int
    config: GroupsKnockoutConfig
    groups: List[GroupState]
    phase: str  # "groups" | "knockout"
    knockout_generated: bool


class MatchScoreResult(BaseModel):
    match: MatchRead
    next_match: Optional[MatchRead] = None
    warnings: List[str] = Field(default_factory=list)


class WithdrawTeamResult(BaseModel):
    forfeited_matches: List[int]
    message: str

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from sqlalchemy import JSON, UniqueConstraint as SAUniqueConstraint
from sqlmodel import Column, Field, Relationship, SQLModel

if TYPE_CHECKING:
    from bracket_engine.models.bracket import Bracket


class MatchStatus(str, Enum):
    pending = "pending"
    scheduled = "scheduled"
    in_progress = "in_progress"
    completed = "completed"
    bye = "bye"
    forfeit = "forfeit"
    cancelled = "cancelled"


# Statuses that carry a winner and trigger advancement
DECIDED_STATUSES = (MatchStatus.completed.value, MatchStatus.forfeit.value)
TERMINAL_STATUSES = (MatchStatus.completed.value, MatchStatus.forfeit.value, MatchStatus.cancelled.value)
STARTED_STATUSES = (MatchStatus.in_progress.value, MatchStatus.completed.value, MatchStatus.forfeit.value)


class Match(SQLModel, table=True):
    __table_args__ = (SAUniqueConstraint("bracket_id", "match_number", name="uq_bracket_match_number"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    bracket_id: int = Field(foreign_key="bracket.id", index=True)
    round_number: int
    match_number: int  # Monotonic across rounds; resolves forward links after bulk insert
    round_name: Optional[str] = Field(default=None)

    # Null slot = TBD (filled by the winner of a feeding match) or the empty side of a bye
    team1_id: Optional[int] = Field(default=None, foreign_key="team.id")
    team2_id: Optional[int] = Field(default=None, foreign_key="team.id")

    score_team1: Optional[int] = Field(default=None)  # Sets won
    score_team2: Optional[int] = Field(default=None)
    set_scores: Optional[List[Dict[str, Any]]] = Field(default=None, sa_column=Column(JSON, nullable=True))
    winner_team: Optional[int] = Field(default=None)  # 1 | 2

    # One-way edge to the match the winner feeds into (always round_number + 1)
    next_match_id: Optional[int] = Field(default=None, foreign_key="match.id")
    next_match_position: Optional[int] = Field(default=None)  # 1 = team1 slot, 2 = team2 slot

    group_number: Optional[int] = Field(default=None, index=True)  # None = knockout match
    status: str = Field(default=MatchStatus.pending.value)
    is_bye: bool = Field(default=False)
    version: int = Field(default=1)  # Optimistic concurrency counter, bumped on every write

    submitted_by: Optional[str] = Field(default=None)
    submitted_at: Optional[datetime] = Field(default=None)
    completed_at: Optional[datetime] = Field(default=None)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow, sa_column_kwargs={"onupdate": datetime.utcnow})

    # Relationships
    bracket: "Bracket" = Relationship(back_populates="matches")

    @property
    def is_knockout(self) -> bool:
        return self.group_number is None

    def team_id_at(self, position: Optional[int]) -> Optional[int]:
        if position == 1:
            return self.team1_id
        if position == 2:
            return self.team2_id
        return None

    def winner_team_id(self) -> Optional[int]:
        return self.team_id_at(self.winner_team)

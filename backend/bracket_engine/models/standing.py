from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from bracket_engine.models.bracket import Bracket


class Standing(SQLModel, table=True):
    """Per-team aggregate. Always recomputed from match history, never patched."""

    __table_args__ = (SAUniqueConstraint("bracket_id", "team_id", name="uq_bracket_team_standing"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    bracket_id: int = Field(foreign_key="bracket.id", index=True)
    team_id: Optional[int] = Field(default=None, foreign_key="team.id")
    player_id: Optional[str] = Field(default=None)  # Individual formats (americano/mexicano)
    group_number: Optional[int] = Field(default=None)
    position: int = Field(default=0)
    total_points: int = Field(default=0)
    matches_played: int = Field(default=0)
    matches_won: int = Field(default=0)
    matches_lost: int = Field(default=0)
    games_won: int = Field(default=0)
    games_lost: int = Field(default=0)
    point_difference: int = Field(default=0)
    round_reached: Optional[str] = Field(default=None)
    updated_at: datetime = Field(default_factory=datetime.utcnow, sa_column_kwargs={"onupdate": datetime.utcnow})

    # Relationships
    bracket: "Bracket" = Relationship(back_populates="standings")

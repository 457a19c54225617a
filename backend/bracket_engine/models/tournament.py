from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from bracket_engine.models.bracket import Bracket
    from bracket_engine.models.team import Team


class Tournament(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    allow_player_scores: bool = Field(default=False)  # Players may submit their own match scores
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow, sa_column_kwargs={"onupdate": datetime.utcnow})

    # Relationships
    brackets: List["Bracket"] = Relationship(back_populates="tournament")
    teams: List["Team"] = Relationship(back_populates="tournament")

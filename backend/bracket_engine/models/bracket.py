from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from sqlalchemy import JSON
from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Column, Field, Relationship, SQLModel

if TYPE_CHECKING:
    from bracket_engine.models.match import Match
    from bracket_engine.models.standing import Standing
    from bracket_engine.models.tournament import Tournament


class BracketFormat(str, Enum):
    knockout = "knockout"
    groups_knockout = "groups_knockout"
    round_robin = "round_robin"
    americano = "americano"
    mexicano = "mexicano"


class BracketStatus(str, Enum):
    draft = "draft"
    published = "published"
    in_progress = "in_progress"
    completed = "completed"
    cancelled = "cancelled"


class SeedingMethod(str, Enum):
    random = "random"
    manual = "manual"
    ranking = "ranking"


class Bracket(SQLModel, table=True):
    __table_args__ = (SAUniqueConstraint("tournament_id", "category_id", name="uq_bracket_tournament_category"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    category_id: int = Field(index=True)
    format: str = Field(default=BracketFormat.knockout.value)
    status: str = Field(default=BracketStatus.draft.value)
    # GroupsKnockoutConfig serialized with model_dump(); see schemas.py
    config: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))
    seeding_method: str = Field(default=SeedingMethod.manual.value)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow, sa_column_kwargs={"onupdate": datetime.utcnow})

    # Relationships
    tournament: "Tournament" = Relationship(back_populates="brackets")
    matches: List["Match"] = Relationship(back_populates="bracket")
    standings: List["Standing"] = Relationship(back_populates="bracket")

from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from bracket_engine.models.tournament import Tournament


class Team(SQLModel, table=True):
    """A doubles pair registered in one category of a tournament."""

    __table_args__ = (SAUniqueConstraint("tournament_id", "category_id", "name", name="uq_category_team_name"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    category_id: int = Field(index=True)
    name: str
    player1_uid: Optional[str] = Field(default=None)
    player2_uid: Optional[str] = Field(default=None)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    # Relationships
    tournament: "Tournament" = Relationship(back_populates="teams")

    def player_uids(self) -> List[str]:
        return [uid for uid in (self.player1_uid, self.player2_uid) if uid]

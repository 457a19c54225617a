from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import JSON
from sqlmodel import Column, Field, SQLModel


class AuditEvent(SQLModel, table=True):
    """Append-only trail of organizer and player actions on brackets and matches."""

    id: Optional[int] = Field(default=None, primary_key=True)
    entity_type: str  # "bracket" | "match"
    entity_id: str
    action: str
    actor_id: Optional[str] = Field(default=None)
    details: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))
    created_at: datetime = Field(default_factory=datetime.utcnow)

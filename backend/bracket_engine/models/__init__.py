from bracket_engine.models.audit_event import AuditEvent
from bracket_engine.models.bracket import Bracket, BracketFormat, BracketStatus, SeedingMethod
from bracket_engine.models.match import Match, MatchStatus
from bracket_engine.models.standing import Standing
from bracket_engine.models.team import Team
from bracket_engine.models.tournament import Tournament

__all__ = [
    "Tournament",
    "Team",
    "Bracket",
    "BracketFormat",
    "BracketStatus",
    "SeedingMethod",
    "Match",
    "MatchStatus",
    "Standing",
    "AuditEvent",
]

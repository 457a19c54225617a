from bracket_engine.repositories.audit_log import AuditLog
from bracket_engine.repositories.bracket_repository import (
    BracketRepository,
    BracketSnapshot,
    StandingInput,
)

__all__ = ["AuditLog", "BracketRepository", "BracketSnapshot", "StandingInput"]

# Force SQLModel table registration at test discovery time
# This ensures all models are registered before any test database creation
from bracket_engine.models.audit_event import AuditEvent  # noqa: F401
from bracket_engine.models.bracket import Bracket  # noqa: F401
from bracket_engine.models.match import Match  # noqa: F401
from bracket_engine.models.standing import Standing  # noqa: F401
from bracket_engine.models.team import Team  # noqa: F401
from bracket_engine.models.tournament import Tournament  # noqa: F401

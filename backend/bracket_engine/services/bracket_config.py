"""
Typed access to Bracket.config.

The column holds GroupsKnockoutConfig.model_dump(); anything unreadable is
logged and treated as "no config" so callers fall back to defaults.
"""
import logging
from typing import Optional

from pydantic import ValidationError as PydanticValidationError

from bracket_engine.models.bracket import Bracket
from bracket_engine.schemas import GroupsKnockoutConfig, MatchFormatConfig

logger = logging.getLogger(__name__)

MAX_TEAMS_PER_BRACKET = 128
MAX_GROUPS = 16
MAX_SETS_PER_MATCH = 5


def load_config(bracket: Bracket) -> Optional[GroupsKnockoutConfig]:
    if not bracket.config:
        return None
    try:
        return GroupsKnockoutConfig.model_validate(bracket.config)
    except PydanticValidationError as exc:
        logger.warning("Ignoring unreadable config on bracket %s: %s", bracket.id, exc)
        return None


def match_format_for(bracket: Bracket) -> Optional[MatchFormatConfig]:
    config = load_config(bracket)
    return config.match_format if config is not None else None


def match_format_problem(match_format: Optional[MatchFormatConfig]) -> Optional[str]:
    """Bounds check for a match format; returns a reason or None when acceptable."""
    if match_format is None:
        return None
    if not 1 <= match_format.sets <= MAX_SETS_PER_MATCH:
        return f"Match format sets must be between 1 and {MAX_SETS_PER_MATCH}"
    if match_format.games_per_set is not None and match_format.games_per_set <= 0:
        return "games_per_set must be positive"
    if match_format.points_per_set is not None and match_format.points_per_set <= 0:
        return "points_per_set must be positive"
    return None

"""
Exceptions raised at the repository boundary.

Atomic repository operations raise these before committing anything; the
services translate them into Err results (see services/result.py).
"""


class BracketEngineError(Exception):
    """Base class for bracket engine errors."""


class ValidationError(BracketEngineError):
    """Input rejected before any mutation."""


class NotFoundError(BracketEngineError):
    """Bracket, match or team does not exist."""


class StateConflictError(BracketEngineError):
    """A precondition on stored state does not hold."""


class ConcurrencyConflictError(BracketEngineError):
    """Expected match version is stale; the caller should reload and retry."""

    def __init__(self, match_id: int, expected_version: int, actual_version: int):
        self.match_id = match_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Match {match_id} was modified concurrently "
            f"(expected version {expected_version}, found {actual_version})"
        )

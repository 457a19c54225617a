"""
Progression of a live bracket: scoring, reset, advancement, withdrawal,
group swaps and match status changes.

Every write that has to be atomic is a single repository call; this service
only validates input, maps repository exceptions to Err results, writes the
audit trail and recalculates standings afterwards.
"""
import logging
from typing import Dict, List, Optional, Sequence, Set

from sqlalchemy.exc import SQLAlchemyError

from bracket_engine.exceptions import BracketEngineError
from bracket_engine.models.bracket import Bracket
from bracket_engine.models.match import TERMINAL_STATUSES, Match, MatchStatus
from bracket_engine.repositories.audit_log import AuditLog
from bracket_engine.repositories.bracket_repository import BracketRepository
from bracket_engine.schemas import (
    GroupsKnockoutConfig,
    GroupsState,
    MatchRead,
    MatchScoreResult,
    SetScore,
    WithdrawTeamResult,
)
from bracket_engine.services import bracket_views
from bracket_engine.services.bracket_config import MAX_SETS_PER_MATCH, load_config, match_format_for
from bracket_engine.services.result import (
    Err,
    ErrorKind,
    Ok,
    Result,
    err_from_exception,
    not_found,
    state_conflict,
    validation_error,
)
from bracket_engine.services.score_validator import ScoreInvalid, validate_score
from bracket_engine.services.standings_service import StandingsService

logger = logging.getLogger(__name__)

# Completed and forfeit are reached only through scoring and withdrawal
STATUS_TRANSITIONS: Dict[str, Set[str]] = {
    MatchStatus.pending.value: {MatchStatus.scheduled.value, MatchStatus.in_progress.value, MatchStatus.cancelled.value},
    MatchStatus.scheduled.value: {MatchStatus.in_progress.value, MatchStatus.cancelled.value},
    MatchStatus.in_progress.value: {MatchStatus.cancelled.value},
    MatchStatus.bye.value: {MatchStatus.cancelled.value},
}


def forfeit_message(count: int) -> str:
    return f"Team withdrawn. {count} match(es) forfeited."


class BracketProgressionService:
    def __init__(self, repository: BracketRepository, audit_log: AuditLog, standings: StandingsService):
        self.repository = repository
        self.audit_log = audit_log
        self.standings = standings

    # ========================================================================
    # Scoring
    # ========================================================================

    def update_score(
        self,
        match_id: int,
        set_scores: Sequence[SetScore],
        expected_version: Optional[int] = None,
        actor_id: Optional[str] = None,
    ) -> Result[MatchScoreResult]:
        """Organizer scoring. A completed match may be rescored."""
        match = self.repository.get_match(match_id)
        if match is None:
            return not_found("Match not found")
        if match.is_bye or match.status in (MatchStatus.bye.value, MatchStatus.cancelled.value):
            return state_conflict(f"Cannot score a match with status '{match.status}'")
        return self._score(match, set_scores, expected_version, actor_id, submitted_by=None)

    def submit_player_score(
        self,
        match_id: int,
        user_id: str,
        set_scores: Sequence[SetScore],
        expected_version: Optional[int] = None,
    ) -> Result[MatchScoreResult]:
        """Player scoring: the tournament must allow it and the user must be on one of the two teams."""
        match = self.repository.get_match(match_id)
        if match is None:
            return not_found("Match not found")
        if match.status in (MatchStatus.completed.value, MatchStatus.forfeit.value):
            return state_conflict("Match is already completed")

        bracket = self.repository.get_bracket_by_id(match.bracket_id)
        if bracket is None:
            return not_found("Bracket not found")
        if not self.repository.get_tournament_allow_player_scores(bracket.tournament_id):
            return Err(ErrorKind.forbidden, "Tournament does not allow player score submission")
        if match.team1_id is None or match.team2_id is None:
            return state_conflict("Cannot submit score: match has unassigned teams")

        roster = self.repository.get_team_player_uids(match.team1_id) + self.repository.get_team_player_uids(
            match.team2_id
        )
        if user_id not in roster:
            return Err(ErrorKind.forbidden, "User is not a player in this match")

        return self._score(match, set_scores, expected_version, user_id, submitted_by=user_id)

    def _score(
        self,
        match: Match,
        set_scores: Sequence[SetScore],
        expected_version: Optional[int],
        actor_id: Optional[str],
        submitted_by: Optional[str],
    ) -> Result[MatchScoreResult]:
        if not set_scores:
            return validation_error("At least 1 set required")
        if len(set_scores) > MAX_SETS_PER_MATCH:
            return validation_error(f"Maximum {MAX_SETS_PER_MATCH} sets per match")
        if match.team1_id is None or match.team2_id is None:
            return state_conflict("Cannot score a match with unassigned teams")

        bracket = self.repository.get_bracket_by_id(match.bracket_id)
        if bracket is None:
            return not_found("Bracket not found")

        validation = validate_score(set_scores, match_format_for(bracket))
        if isinstance(validation, ScoreInvalid):
            return validation_error(validation.reason)

        match_id = match.id
        try:
            updated, next_match = self.repository.update_match_score_and_advance(
                match_id,
                validation.sets_won[0],
                validation.sets_won[1],
                [s.model_dump(exclude_none=True) for s in set_scores],
                validation.winner,
                expected_version=expected_version,
                submitted_by=submitted_by,
            )
        except (BracketEngineError, SQLAlchemyError) as exc:
            return err_from_exception(exc)

        self.audit_log.log(
            "match",
            match_id,
            "update_score" if submitted_by is None else "submit_player_score",
            actor_id,
            {"set_scores": [s.model_dump(exclude_none=True) for s in set_scores], "winner": validation.winner},
        )
        warnings = self._recalculate(bracket)
        return Ok(
            MatchScoreResult(
                match=MatchRead.model_validate(updated),
                next_match=MatchRead.model_validate(next_match) if next_match is not None else None,
                warnings=warnings,
            )
        )

    def _recalculate(self, bracket: Bracket) -> List[str]:
        try:
            self.standings.recalculate(bracket)
        except SQLAlchemyError:
            logger.exception("Standings recalculation failed for bracket %s", bracket.id)
            return ["Standings could not be recalculated"]
        return []

    def reset_score(
        self, match_id: int, expected_version: Optional[int] = None, actor_id: Optional[str] = None
    ) -> Result[MatchRead]:
        match = self.repository.get_match(match_id)
        if match is None:
            return not_found("Match not found")
        previous = f"{match.score_team1}-{match.score_team2}"
        bracket_id = match.bracket_id

        try:
            reset = self.repository.reset_match_score_atomic(match_id, expected_version)
        except (BracketEngineError, SQLAlchemyError) as exc:
            return err_from_exception(exc)

        self.audit_log.log("match", match_id, "reset_score", actor_id, {"previous_score": previous})
        bracket = self.repository.get_bracket_by_id(bracket_id)
        if bracket is not None:
            self._recalculate(bracket)
        return Ok(MatchRead.model_validate(reset))

    def advance_winner(self, match_id: int) -> Result[MatchRead]:
        """Push an already decided winner forward again; a match without a next match is left as is."""
        try:
            self.repository.advance_winner(match_id)
        except (BracketEngineError, SQLAlchemyError) as exc:
            return err_from_exception(exc)
        return Ok(MatchRead.model_validate(self.repository.get_match(match_id)))

    # ========================================================================
    # Withdrawal and group changes
    # ========================================================================

    def withdraw_team(
        self,
        tournament_id: int,
        category_id: int,
        team_id: int,
        reason: Optional[str] = None,
        actor_id: Optional[str] = None,
    ) -> Result[WithdrawTeamResult]:
        """
        Forfeit every pending or scheduled match of the team.

        Each opponent wins and advances exactly as after a normal win.
        Matches already in progress or finished are left alone.
        """
        bracket = self.repository.get_bracket(tournament_id, category_id)
        if bracket is None:
            return not_found("Bracket not found")

        try:
            forfeited = self.repository.forfeit_open_matches_atomic(bracket.id, team_id)
        except (BracketEngineError, SQLAlchemyError) as exc:
            return err_from_exception(exc)

        forfeited_ids = [m.id for m in forfeited]
        logger.info("Team %s withdrawn from bracket %s, %d match(es) forfeited", team_id, bracket.id, len(forfeited_ids))
        self.audit_log.log(
            "bracket",
            bracket.id,
            "withdraw_team",
            actor_id,
            {"team_id": team_id, "reason": reason, "forfeited_matches": forfeited_ids},
        )
        if forfeited_ids:
            self._recalculate(bracket)
        return Ok(WithdrawTeamResult(forfeited_matches=forfeited_ids, message=forfeit_message(len(forfeited_ids))))

    def swap_teams_in_groups(
        self,
        tournament_id: int,
        category_id: int,
        team1_id: int,
        team2_id: int,
        actor_id: Optional[str] = None,
    ) -> Result[GroupsState]:
        """Exchange two teams between groups before the knockout phase exists."""
        snapshot = self.repository.get_bracket_with_matches(tournament_id, category_id)
        if snapshot is None:
            return not_found("Bracket not found")
        bracket = snapshot.bracket
        if team1_id == team2_id:
            return validation_error("Cannot swap a team with itself")

        involved = {team1_id, team2_id}
        has_played = any(
            m.status in (MatchStatus.completed.value, MatchStatus.forfeit.value)
            and involved & {m.team1_id, m.team2_id}
            for m in snapshot.matches
        )

        try:
            self.repository.swap_teams_in_groups_atomic(bracket.id, team1_id, team2_id)
        except (BracketEngineError, SQLAlchemyError) as exc:
            return err_from_exception(exc)

        self.audit_log.log("bracket", bracket.id, "swap_teams", actor_id, {"team1_id": team1_id, "team2_id": team2_id})
        if has_played:
            self._recalculate(bracket)

        refreshed = self.repository.get_bracket_with_matches(tournament_id, category_id)
        config = load_config(refreshed.bracket) or GroupsKnockoutConfig()
        return Ok(bracket_views.groups_state(refreshed, config))

    # ========================================================================
    # Status
    # ========================================================================

    def update_match_status(
        self, match_id: int, status: str, expected_version: Optional[int] = None, actor_id: Optional[str] = None
    ) -> Result[MatchRead]:
        if status not in {s.value for s in MatchStatus}:
            return validation_error(f"Unknown match status '{status}'")
        if status in (MatchStatus.completed.value, MatchStatus.forfeit.value, MatchStatus.bye.value):
            return validation_error(f"Status '{status}' is set by scoring or withdrawal, not directly")

        match = self.repository.get_match(match_id)
        if match is None:
            return not_found("Match not found")
        if match.status in TERMINAL_STATUSES:
            return state_conflict(f"Match {match_id} is already {match.status}")
        if status not in STATUS_TRANSITIONS.get(match.status, set()):
            return state_conflict(f"Cannot move match {match_id} from '{match.status}' to '{status}'")

        previous = match.status
        try:
            updated = self.repository.update_match_status(match_id, status, expected_version)
        except (BracketEngineError, SQLAlchemyError) as exc:
            return err_from_exception(exc)

        self.audit_log.log("match", match_id, "update_status", actor_id, {"from": previous, "to": status})
        return Ok(MatchRead.model_validate(updated))

"""
Session-backed persistence for brackets, matches and standings.

Plain reads return rows or None. Compound writes (score + advance, reset +
advance reversal, group swap, withdrawal forfeits, bye resolution) each run in
a single transaction: preconditions are checked on freshly loaded rows, any
violation raises before commit, and the session is rolled back on every error
so callers never observe a partial write.
"""
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from sqlalchemy import or_
from sqlmodel import Session, select

from bracket_engine.exceptions import (
    ConcurrencyConflictError,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from bracket_engine.models.bracket import Bracket
from bracket_engine.models.match import DECIDED_STATUSES, STARTED_STATUSES, Match, MatchStatus
from bracket_engine.models.standing import Standing
from bracket_engine.models.team import Team
from bracket_engine.models.tournament import Tournament
from bracket_engine.services import advancement_service
from bracket_engine.services.seed_placement import GeneratedMatch

logger = logging.getLogger(__name__)

OPEN_STATUSES = (MatchStatus.pending.value, MatchStatus.scheduled.value)


@dataclass
class BracketSnapshot:
    bracket: Bracket
    matches: List[Match]
    standings: List[Standing]


@dataclass
class StandingInput:
    """One recomputed standing row, keyed by (bracket_id, team_id)."""

    team_id: int
    position: int
    group_number: Optional[int] = None
    total_points: int = 0
    matches_played: int = 0
    matches_won: int = 0
    matches_lost: int = 0
    games_won: int = 0
    games_lost: int = 0
    point_difference: int = 0
    round_reached: Optional[str] = None


class BracketRepository:
    def __init__(self, session: Session):
        self.session = session

    @contextmanager
    def atomic(self) -> Iterator[Session]:
        """Commit once on success, roll back and re-raise on any error."""
        try:
            yield self.session
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

    # ========================================================================
    # Brackets
    # ========================================================================

    def get_bracket(self, tournament_id: int, category_id: int) -> Optional[Bracket]:
        return self.session.exec(
            select(Bracket).where(Bracket.tournament_id == tournament_id, Bracket.category_id == category_id)
        ).first()

    def get_bracket_by_id(self, bracket_id: int) -> Optional[Bracket]:
        return self.session.get(Bracket, bracket_id)

    def get_bracket_with_matches(self, tournament_id: int, category_id: int) -> Optional[BracketSnapshot]:
        bracket = self.get_bracket(tournament_id, category_id)
        if bracket is None:
            return None
        return BracketSnapshot(
            bracket=bracket,
            matches=self.get_matches_by_bracket_id(bracket.id),
            standings=self.get_standings(bracket.id),
        )

    def get_brackets_by_tournament(self, tournament_id: int) -> List[Bracket]:
        return list(
            self.session.exec(
                select(Bracket).where(Bracket.tournament_id == tournament_id).order_by(Bracket.category_id)
            ).all()
        )

    def create_bracket(
        self,
        tournament_id: int,
        category_id: int,
        format: str,
        seeding_method: str,
        config: Optional[Dict[str, Any]] = None,
    ) -> Bracket:
        if self.session.get(Tournament, tournament_id) is None:
            raise NotFoundError(f"Tournament {tournament_id} not found")
        bracket = Bracket(
            tournament_id=tournament_id,
            category_id=category_id,
            format=format,
            seeding_method=seeding_method,
            config=config,
        )
        with self.atomic():
            self.session.add(bracket)
        self.session.refresh(bracket)
        return bracket

    def update_bracket_config(
        self, bracket_id: int, config: Optional[Dict[str, Any]], format: Optional[str] = None
    ) -> Bracket:
        with self.atomic():
            bracket = self._require_bracket(bracket_id)
            bracket.config = config
            if format is not None:
                bracket.format = format
            bracket.updated_at = datetime.utcnow()
            self.session.add(bracket)
        self.session.refresh(bracket)
        return bracket

    def update_bracket_status(self, bracket_id: int, status: str) -> Bracket:
        with self.atomic():
            bracket = self._require_bracket(bracket_id)
            bracket.status = status
            bracket.updated_at = datetime.utcnow()
            self.session.add(bracket)
        self.session.refresh(bracket)
        return bracket

    def delete_bracket(self, bracket_id: int) -> None:
        with self.atomic():
            bracket = self._require_bracket(bracket_id)
            self._delete_bracket_children(bracket_id)
            self.session.expire(bracket, ["matches", "standings"])
            self.session.delete(bracket)

    def _require_bracket(self, bracket_id: int) -> Bracket:
        bracket = self.session.get(Bracket, bracket_id)
        if bracket is None:
            raise NotFoundError(f"Bracket {bracket_id} not found")
        return bracket

    def _delete_bracket_children(self, bracket_id: int) -> None:
        for standing in self.session.exec(select(Standing).where(Standing.bracket_id == bracket_id)).all():
            self.session.delete(standing)
        self._delete_matches(self.get_matches_by_bracket_id(bracket_id))

    def _delete_matches(self, matches: Sequence[Match]) -> None:
        # Links point at matches of the same bracket; clear them before the rows go
        for match in matches:
            match.next_match_id = None
            self.session.add(match)
        self.session.flush()
        for match in matches:
            self.session.delete(match)
        self.session.flush()

    # ========================================================================
    # Matches
    # ========================================================================

    def create_matches(self, bracket_id: int, generated: Sequence[GeneratedMatch]) -> List[Match]:
        """Insert generated matches in match_number order. Forward links are written separately."""
        rows = [
            Match(
                bracket_id=bracket_id,
                round_number=g.round_number,
                match_number=g.match_number,
                round_name=g.round_name,
                team1_id=g.team1_id,
                team2_id=g.team2_id,
                group_number=g.group_number,
                status=g.status,
                is_bye=g.is_bye,
            )
            for g in sorted(generated, key=lambda g: g.match_number)
        ]
        with self.atomic():
            self.session.add_all(rows)
        for row in rows:
            self.session.refresh(row)
        return rows

    def update_match_next_match_ids(self, links: Sequence[Tuple[int, int, int]]) -> None:
        """Write (match_id, next_match_id, next_match_position) forward links in one transaction."""
        with self.atomic():
            for match_id, next_match_id, position in links:
                match = self.session.get(Match, match_id)
                if match is None:
                    raise NotFoundError(f"Match {match_id} not found")
                match.next_match_id = next_match_id
                match.next_match_position = position
                self.session.add(match)

    def delete_matches_by_bracket_id(self, bracket_id: int) -> None:
        """Drop every match and standing of a bracket, keeping the bracket row."""
        with self.atomic():
            self._delete_bracket_children(bracket_id)

    def delete_matches_by_ids(self, match_ids: Sequence[int]) -> int:
        if not match_ids:
            return 0
        with self.atomic():
            matches = self.session.exec(select(Match).where(Match.id.in_(match_ids))).all()
            self._delete_matches(matches)
        return len(matches)

    def get_match(self, match_id: int) -> Optional[Match]:
        return self.session.get(Match, match_id)

    def get_matches_by_bracket_id(self, bracket_id: int) -> List[Match]:
        return list(
            self.session.exec(
                select(Match).where(Match.bracket_id == bracket_id).order_by(Match.match_number)
            ).all()
        )

    def get_matches_for_team(self, bracket_id: int, team_id: int) -> List[Match]:
        return list(
            self.session.exec(
                select(Match)
                .where(Match.bracket_id == bracket_id, or_(Match.team1_id == team_id, Match.team2_id == team_id))
                .order_by(Match.round_number, Match.match_number)
            ).all()
        )

    def _lock_match(self, match_id: int, expected_version: Optional[int] = None) -> Match:
        """Load the current committed row (FOR UPDATE where supported) and check its version."""
        match = self.session.exec(
            select(Match).where(Match.id == match_id).with_for_update().execution_options(populate_existing=True)
        ).first()
        if match is None:
            raise NotFoundError(f"Match {match_id} not found")
        if expected_version is not None and match.version != expected_version:
            raise ConcurrencyConflictError(match_id, expected_version, match.version)
        return match

    # ========================================================================
    # Atomic compound operations
    # ========================================================================

    def update_match_score_and_advance(
        self,
        match_id: int,
        score_team1: int,
        score_team2: int,
        set_scores: List[Dict[str, Any]],
        winner_team: int,
        expected_version: Optional[int] = None,
        submitted_by: Optional[str] = None,
    ) -> Tuple[Match, Optional[Match]]:
        """
        Record a result and move the winner forward in one transaction.

        Rescoring a decided match is allowed; if the winner changes, the old
        winner is pulled out of the next match first, which is refused once
        that match has started.

        Raises:
            NotFoundError: match missing
            ConcurrencyConflictError: expected_version is stale
            StateConflictError: winner change after the next match started
        """
        with self.atomic():
            match = self._lock_match(match_id, expected_version)
            new_winner_id = match.team_id_at(winner_team)
            if new_winner_id is None:
                raise ValidationError(f"Match {match_id} has no team in position {winner_team}")

            previous_winner_id = match.winner_team_id() if match.status in DECIDED_STATUSES else None
            if match.next_match_id is not None and previous_winner_id not in (None, new_winner_id):
                next_match = self._lock_match(match.next_match_id)
                if next_match.status in STARTED_STATUSES:
                    raise StateConflictError(
                        f"Cannot change the winner of match {match_id}: next match {next_match.id} already started"
                    )
                advancement_service.clear_advanced_slot(self.session, match, previous_winner_id)

            now = datetime.utcnow()
            match.score_team1 = score_team1
            match.score_team2 = score_team2
            match.set_scores = set_scores
            match.winner_team = winner_team
            match.status = MatchStatus.completed.value
            match.submitted_by = submitted_by
            match.submitted_at = now
            match.completed_at = now
            match.version += 1
            self.session.add(match)

            next_match = advancement_service.advance_decided_match(self.session, match)

        self.session.refresh(match)
        if next_match is not None:
            self.session.refresh(next_match)
        return match, next_match

    def reset_match_score_atomic(self, match_id: int, expected_version: Optional[int] = None) -> Match:
        """
        Clear a result and take the winner back out of the next match.

        Raises:
            StateConflictError: bye, no result, or the next match already started
        """
        with self.atomic():
            match = self._lock_match(match_id, expected_version)
            if match.is_bye:
                raise StateConflictError(f"Match {match_id} is a bye and cannot be reset")
            if match.status not in DECIDED_STATUSES:
                raise StateConflictError(f"Match {match_id} has no result to reset")

            winner_id = match.winner_team_id()
            if match.next_match_id is not None:
                next_match = self._lock_match(match.next_match_id)
                if next_match.status in STARTED_STATUSES:
                    raise StateConflictError(
                        f"Cannot reset match {match_id}: next match {next_match.id} already started"
                    )
                advancement_service.clear_advanced_slot(self.session, match, winner_id)

            match.score_team1 = None
            match.score_team2 = None
            match.set_scores = None
            match.winner_team = None
            match.status = MatchStatus.pending.value
            match.submitted_by = None
            match.submitted_at = None
            match.completed_at = None
            match.version += 1
            self.session.add(match)

        self.session.refresh(match)
        return match

    def swap_teams_in_groups_atomic(self, bracket_id: int, team1_id: int, team2_id: int) -> None:
        """
        Exchange the group assignments of two teams.

        Standing rows trade group and position; the teams trade places in
        every group match not yet started. Refused once a knockout phase exists.
        """
        with self.atomic():
            standing1 = self._group_standing(bracket_id, team1_id)
            standing2 = self._group_standing(bracket_id, team2_id)
            if standing1.group_number == standing2.group_number:
                raise ValidationError("Teams are already in the same group")

            knockout = self.session.exec(
                select(Match).where(Match.bracket_id == bracket_id, Match.group_number.is_(None))
            ).first()
            if knockout is not None:
                raise StateConflictError("Cannot swap teams after the knockout phase was generated")

            live = self.session.exec(
                select(Match).where(
                    Match.bracket_id == bracket_id,
                    Match.group_number.is_not(None),
                    Match.status == MatchStatus.in_progress.value,
                    or_(
                        Match.team1_id.in_([team1_id, team2_id]),
                        Match.team2_id.in_([team1_id, team2_id]),
                    ),
                )
            ).first()
            if live is not None:
                raise StateConflictError(f"Cannot swap teams while match {live.match_number} is in progress")

            group1, group2 = standing1.group_number, standing2.group_number
            for group_number, leaving, arriving in ((group1, team1_id, team2_id), (group2, team2_id, team1_id)):
                open_matches = self.session.exec(
                    select(Match).where(
                        Match.bracket_id == bracket_id,
                        Match.group_number == group_number,
                        Match.status.in_(OPEN_STATUSES),
                        or_(Match.team1_id == leaving, Match.team2_id == leaving),
                    )
                ).all()
                for match in open_matches:
                    if match.team1_id == leaving:
                        match.team1_id = arriving
                    else:
                        match.team2_id = arriving
                    match.version += 1
                    self.session.add(match)

            standing1.group_number, standing2.group_number = group2, group1
            standing1.position, standing2.position = standing2.position, standing1.position
            self.session.add(standing1)
            self.session.add(standing2)

    def _group_standing(self, bracket_id: int, team_id: int) -> Standing:
        standing = self.session.exec(
            select(Standing).where(
                Standing.bracket_id == bracket_id,
                Standing.team_id == team_id,
                Standing.group_number.is_not(None),
            )
        ).first()
        if standing is None:
            raise NotFoundError(f"Team {team_id} is not assigned to a group in bracket {bracket_id}")
        return standing

    def forfeit_open_matches_atomic(self, bracket_id: int, team_id: int) -> List[Match]:
        """
        Forfeit every pending/scheduled match of a team; the opponent wins and advances.

        When the opponent slot is still empty the forfeit waits there: whoever
        arrives in that slot later wins it (see advancement_service).
        """
        with self.atomic():
            matches = self.session.exec(
                select(Match)
                .where(
                    Match.bracket_id == bracket_id,
                    Match.status.in_(OPEN_STATUSES),
                    or_(Match.team1_id == team_id, Match.team2_id == team_id),
                )
                .order_by(Match.round_number, Match.match_number)
                .with_for_update()
            ).all()

            now = datetime.utcnow()
            for match in matches:
                match.winner_team = 2 if match.team1_id == team_id else 1
                match.status = MatchStatus.forfeit.value
                match.completed_at = now
                match.version += 1
                self.session.add(match)
                advancement_service.advance_decided_match(self.session, match)

        for match in matches:
            self.session.refresh(match)
        return list(matches)

    def advance_to_next_match(self, match_id: int, team_id: int) -> Optional[Match]:
        """Place team_id in the next match slot fed by match_id."""
        with self.atomic():
            match = self._lock_match(match_id)
            next_match = advancement_service.place_in_next_match(self.session, match, team_id)
        if next_match is not None:
            self.session.refresh(next_match)
        return next_match

    def advance_winner(self, match_id: int) -> Optional[Match]:
        """Re-propagate the winner of a decided match. Returns the next match, if any."""
        match = self.get_match(match_id)
        if match is None:
            raise NotFoundError(f"Match {match_id} not found")
        if match.status not in DECIDED_STATUSES or match.winner_team_id() is None:
            raise StateConflictError(f"Match {match_id} has no winner to advance")
        if match.next_match_id is None:
            return None
        return self.advance_to_next_match(match_id, match.winner_team_id())

    def resolve_byes(self, bracket_id: int) -> List[Match]:
        with self.atomic():
            resolved = advancement_service.resolve_byes(self.session, bracket_id)
        return resolved

    def update_match_status(self, match_id: int, status: str, expected_version: Optional[int] = None) -> Match:
        with self.atomic():
            match = self._lock_match(match_id, expected_version)
            match.status = status
            match.version += 1
            self.session.add(match)
        self.session.refresh(match)
        return match

    # ========================================================================
    # Standings
    # ========================================================================

    def get_standings(self, bracket_id: int, group_number: Optional[int] = None) -> List[Standing]:
        statement = select(Standing).where(Standing.bracket_id == bracket_id)
        if group_number is not None:
            statement = statement.where(Standing.group_number == group_number)
        return list(
            self.session.exec(statement.order_by(Standing.group_number, Standing.position, Standing.id)).all()
        )

    def upsert_standings(self, bracket_id: int, rows: Sequence[StandingInput], prune: bool = False) -> List[Standing]:
        """
        Write recomputed standings keyed by team.

        With prune=True, standing rows of teams not in rows are deleted.
        """
        with self.atomic():
            existing = {
                s.team_id: s
                for s in self.session.exec(select(Standing).where(Standing.bracket_id == bracket_id)).all()
            }
            now = datetime.utcnow()
            for row in rows:
                standing = existing.pop(row.team_id, None) or Standing(bracket_id=bracket_id, team_id=row.team_id)
                standing.group_number = row.group_number
                standing.position = row.position
                standing.total_points = row.total_points
                standing.matches_played = row.matches_played
                standing.matches_won = row.matches_won
                standing.matches_lost = row.matches_lost
                standing.games_won = row.games_won
                standing.games_lost = row.games_lost
                standing.point_difference = row.point_difference
                standing.round_reached = row.round_reached
                standing.updated_at = now
                self.session.add(standing)
            if prune:
                for stale in existing.values():
                    self.session.delete(stale)
        return self.get_standings(bracket_id)

    # ========================================================================
    # Authorization lookups
    # ========================================================================

    def get_team_player_uids(self, team_id: int) -> List[str]:
        team = self.session.get(Team, team_id)
        return team.player_uids() if team is not None else []

    def get_tournament_allow_player_scores(self, tournament_id: int) -> bool:
        tournament = self.session.get(Tournament, tournament_id)
        return bool(tournament and tournament.allow_player_scores)

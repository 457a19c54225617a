"""
Bracket generation: knockout trees, group stages and the promotion of group
results into a knockout phase.

Matches are generated as an abstract graph keyed by match_number (see
seed_placement), persisted, then linked once ids exist. Byes are completed
right after linking. When persisting fails part way, whatever this call
created is removed again before the error is returned.
"""
import logging
from typing import Dict, List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError

from bracket_engine.exceptions import BracketEngineError
from bracket_engine.models.bracket import Bracket, BracketFormat, BracketStatus, SeedingMethod
from bracket_engine.models.match import Match, MatchStatus
from bracket_engine.repositories.audit_log import AuditLog
from bracket_engine.repositories.bracket_repository import BracketRepository, StandingInput
from bracket_engine.schemas import (
    BracketRead,
    BracketWithMatches,
    GroupAssignment,
    GroupsKnockoutConfig,
    GroupsState,
)
from bracket_engine.services import bracket_views
from bracket_engine.services.anti_rematch import place_anti_rematch, same_group_meetings
from bracket_engine.services.bracket_config import (
    MAX_GROUPS,
    MAX_TEAMS_PER_BRACKET,
    load_config,
    match_format_problem,
)
from bracket_engine.services.group_formation import config_group_sizes, snake_assign
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
from bracket_engine.services.round_robin import generate_round_robin
from bracket_engine.services.seed_placement import GeneratedMatch, TeamSeed, place_seeds
from bracket_engine.services.standings_service import GROUP_FORMATS, StandingsService

logger = logging.getLogger(__name__)

PLAYED_STATUSES = (MatchStatus.in_progress.value, MatchStatus.completed.value, MatchStatus.forfeit.value)


def _tier_key(standing) -> tuple:
    return (-standing.total_points, -standing.point_difference, -standing.games_won)


class BracketGenerationEngine:
    def __init__(self, repository: BracketRepository, audit_log: AuditLog, standings: StandingsService):
        self.repository = repository
        self.audit_log = audit_log
        self.standings = standings

    # ========================================================================
    # Lifecycle
    # ========================================================================

    def create_bracket(
        self,
        tournament_id: int,
        category_id: int,
        format: str = BracketFormat.knockout.value,
        seeding_method: str = SeedingMethod.manual.value,
        config: Optional[GroupsKnockoutConfig] = None,
        actor_id: Optional[str] = None,
    ) -> Result[BracketRead]:
        """Create an empty bracket, replacing any bracket already in the category."""
        if format not in {f.value for f in BracketFormat}:
            return validation_error(f"Unknown bracket format '{format}'")
        if seeding_method not in {s.value for s in SeedingMethod}:
            return validation_error(f"Unknown seeding method '{seeding_method}'")
        if config is not None:
            problem = match_format_problem(config.match_format)
            if problem:
                return validation_error(problem)

        try:
            existing = self.repository.get_bracket(tournament_id, category_id)
            if existing is not None:
                self.repository.delete_bracket(existing.id)
            bracket = self.repository.create_bracket(
                tournament_id,
                category_id,
                format,
                seeding_method,
                config.model_dump() if config is not None else None,
            )
        except (BracketEngineError, SQLAlchemyError) as exc:
            return err_from_exception(exc)

        self.audit_log.log("bracket", bracket.id, "create", actor_id, {"format": format})
        return Ok(BracketRead.model_validate(bracket))

    def get_bracket(self, tournament_id: int, category_id: int) -> Result[BracketWithMatches]:
        snapshot = self.repository.get_bracket_with_matches(tournament_id, category_id)
        if snapshot is None:
            return not_found("Bracket not found")
        return Ok(bracket_views.bracket_with_matches(snapshot))

    def get_brackets_by_tournament(self, tournament_id: int) -> Result[List[BracketRead]]:
        return Ok([BracketRead.model_validate(b) for b in self.repository.get_brackets_by_tournament(tournament_id)])

    def publish_bracket(self, tournament_id: int, category_id: int, actor_id: Optional[str] = None) -> Result[BracketRead]:
        bracket = self.repository.get_bracket(tournament_id, category_id)
        if bracket is None:
            return not_found("Bracket not found")
        if bracket.status == BracketStatus.published.value:
            return state_conflict("Bracket is already published")
        return self._set_status(bracket, BracketStatus.published.value, "publish", actor_id)

    def unpublish_bracket(self, tournament_id: int, category_id: int, actor_id: Optional[str] = None) -> Result[BracketRead]:
        bracket = self.repository.get_bracket(tournament_id, category_id)
        if bracket is None:
            return not_found("Bracket not found")
        if bracket.status != BracketStatus.published.value:
            return state_conflict("Bracket is not published")
        return self._set_status(bracket, BracketStatus.in_progress.value, "unpublish", actor_id)

    def _set_status(self, bracket: Bracket, status: str, action: str, actor_id: Optional[str]) -> Result[BracketRead]:
        try:
            updated = self.repository.update_bracket_status(bracket.id, status)
        except (BracketEngineError, SQLAlchemyError) as exc:
            return err_from_exception(exc)
        self.audit_log.log("bracket", bracket.id, action, actor_id)
        return Ok(BracketRead.model_validate(updated))

    def delete_bracket(self, bracket_id: int, actor_id: Optional[str] = None) -> Result[bool]:
        try:
            self.repository.delete_bracket(bracket_id)
        except (BracketEngineError, SQLAlchemyError) as exc:
            return err_from_exception(exc)
        self.audit_log.log("bracket", bracket_id, "delete", actor_id)
        return Ok(True)

    # ========================================================================
    # Knockout
    # ========================================================================

    def generate_knockout(
        self,
        tournament_id: int,
        category_id: int,
        seeding_method: str,
        team_ids: Sequence[int],
        actor_id: Optional[str] = None,
    ) -> Result[BracketWithMatches]:
        """
        Generate a single-elimination bracket. Seeds follow the order of team_ids.

        An existing bracket for the category is reused with its matches and
        standings dropped; otherwise a new knockout bracket is created.
        """
        if len(team_ids) < 2:
            return validation_error("At least 2 teams required to generate bracket")
        if len(team_ids) > MAX_TEAMS_PER_BRACKET:
            return validation_error(f"Maximum {MAX_TEAMS_PER_BRACKET} teams per bracket")
        if len(set(team_ids)) != len(team_ids):
            return validation_error("Duplicate team ids")

        try:
            bracket = self.repository.get_bracket(tournament_id, category_id)
            created = bracket is None
            if created:
                bracket = self.repository.create_bracket(
                    tournament_id, category_id, BracketFormat.knockout.value, seeding_method
                )
            else:
                self.repository.delete_matches_by_bracket_id(bracket.id)
                self.repository.update_bracket_config(bracket.id, bracket.config, format=BracketFormat.knockout.value)
        except (BracketEngineError, SQLAlchemyError) as exc:
            return err_from_exception(exc)

        seeds = [TeamSeed(team_id=team_id, seed=index + 1) for index, team_id in enumerate(team_ids)]
        generated = place_seeds(seeds)

        try:
            self._persist(bracket.id, generated)
        except (BracketEngineError, SQLAlchemyError) as exc:
            logger.exception("Persisting knockout for bracket %s failed, rolling back", bracket.id)
            self._compensate(bracket.id, delete_bracket=created)
            return Err(ErrorKind.persistence_failure, f"Failed to create matches: {exc}")

        logger.info("Generated knockout bracket %s: %d teams, %d matches", bracket.id, len(team_ids), len(generated))
        self.audit_log.log(
            "bracket", bracket.id, "generate_knockout", actor_id, {"teams": len(team_ids), "matches": len(generated)}
        )
        return self.get_bracket(tournament_id, category_id)

    def _persist(self, bracket_id: int, generated: List[GeneratedMatch]) -> List[Match]:
        """Insert, link by match_number, then complete byes."""
        created = self.repository.create_matches(bracket_id, generated)
        id_by_number: Dict[int, int] = {m.match_number: m.id for m in created}
        links = [
            (id_by_number[g.match_number], id_by_number[g.next_match_number], g.next_match_position)
            for g in generated
            if g.next_match_number is not None and g.next_match_number in id_by_number
        ]
        if links:
            self.repository.update_match_next_match_ids(links)
        self.repository.resolve_byes(bracket_id)
        return created

    def _compensate(self, bracket_id: int, delete_bracket: bool = False, match_ids: Optional[List[int]] = None) -> None:
        try:
            if delete_bracket:
                self.repository.delete_bracket(bracket_id)
            elif match_ids is not None:
                self.repository.delete_matches_by_ids(match_ids)
            else:
                self.repository.delete_matches_by_bracket_id(bracket_id)
        except (BracketEngineError, SQLAlchemyError):
            logger.exception("Cleanup after failed generation of bracket %s failed", bracket_id)

    def resolve_byes(self, tournament_id: int, category_id: int) -> Result[int]:
        """Complete any bye still open in the bracket; returns how many were resolved."""
        bracket = self.repository.get_bracket(tournament_id, category_id)
        if bracket is None:
            return not_found("Bracket not found")
        try:
            return Ok(len(self.repository.resolve_byes(bracket.id)))
        except (BracketEngineError, SQLAlchemyError) as exc:
            return err_from_exception(exc)

    # ========================================================================
    # Group stage
    # ========================================================================

    def generate_group_stage(
        self,
        tournament_id: int,
        category_id: int,
        groups: Sequence[GroupAssignment],
        config: GroupsKnockoutConfig,
        actor_id: Optional[str] = None,
    ) -> Result[BracketWithMatches]:
        """Round robin within each group plus zeroed standings; the bracket becomes groups_knockout."""
        if len(groups) != config.group_count:
            return validation_error(f"Expected {config.group_count} groups, got {len(groups)}")
        if config.group_count > MAX_GROUPS:
            return validation_error(f"Maximum {MAX_GROUPS} groups allowed")
        all_team_ids = [team_id for group in groups for team_id in group.team_ids]
        if len(all_team_ids) > MAX_TEAMS_PER_BRACKET:
            return validation_error(f"Maximum {MAX_TEAMS_PER_BRACKET} teams per bracket")
        if len(set(all_team_ids)) != len(all_team_ids):
            return validation_error("A team can only be assigned to one group")
        problem = match_format_problem(config.match_format)
        if problem:
            return validation_error(problem)
        for group in groups:
            if len(group.team_ids) < 2:
                return validation_error(
                    f"Group {group.group_number} has {len(group.team_ids)} teams, minimum is 2"
                )

        stored_config = config.model_dump()
        try:
            bracket = self.repository.get_bracket(tournament_id, category_id)
            created = bracket is None
            if created:
                bracket = self.repository.create_bracket(
                    tournament_id,
                    category_id,
                    BracketFormat.groups_knockout.value,
                    SeedingMethod.manual.value,
                    stored_config,
                )
            else:
                self.repository.delete_matches_by_bracket_id(bracket.id)
                self.repository.update_bracket_config(
                    bracket.id, stored_config, format=BracketFormat.groups_knockout.value
                )
        except (BracketEngineError, SQLAlchemyError) as exc:
            return err_from_exception(exc)

        generated: List[GeneratedMatch] = []
        for group in groups:
            generated.extend(generate_round_robin(group.team_ids, group.group_number, len(generated) + 1))

        initial_standings = [
            StandingInput(team_id=team_id, group_number=group.group_number, position=index + 1)
            for group in groups
            for index, team_id in enumerate(group.team_ids)
        ]

        try:
            self._persist(bracket.id, generated)
            self.repository.upsert_standings(bracket.id, initial_standings)
        except (BracketEngineError, SQLAlchemyError) as exc:
            logger.exception("Persisting group stage for bracket %s failed, rolling back", bracket.id)
            self._compensate(bracket.id, delete_bracket=created)
            return Err(ErrorKind.persistence_failure, f"Failed to create group matches: {exc}")

        logger.info(
            "Generated group stage for bracket %s: %d groups, %d teams, %d matches",
            bracket.id,
            len(groups),
            len(all_team_ids),
            len(generated),
        )
        self.audit_log.log(
            "bracket", bracket.id, "generate_groups", actor_id, {"groups": len(groups), "teams": len(all_team_ids)}
        )
        return self.get_bracket(tournament_id, category_id)

    def generate_group_stage_auto(
        self,
        tournament_id: int,
        category_id: int,
        team_ids: Sequence[int],
        config: Optional[GroupsKnockoutConfig] = None,
        actor_id: Optional[str] = None,
    ) -> Result[BracketWithMatches]:
        """Form groups from a seeded team list (snake seeding), then generate the group stage."""
        config = config or GroupsKnockoutConfig()
        sizes = config_group_sizes(config, len(team_ids))
        if not sizes:
            return validation_error(f"Cannot form groups from {len(team_ids)} teams")
        if sum(sizes) < len(team_ids):
            return validation_error(
                f"{config.group_count} groups of {config.teams_per_group} cannot hold {len(team_ids)} teams"
            )

        groups = [g for g in snake_assign(team_ids, sizes) if g.team_ids]
        effective = config.model_copy(
            update={"group_count": len(groups), "teams_per_group": max(len(g.team_ids) for g in groups)}
        )
        return self.generate_group_stage(tournament_id, category_id, groups, effective, actor_id)

    def get_groups_state(self, tournament_id: int, category_id: int) -> Result[GroupsState]:
        snapshot = self.repository.get_bracket_with_matches(tournament_id, category_id)
        if snapshot is None:
            return not_found("Bracket not found")
        if snapshot.bracket.format not in GROUP_FORMATS:
            return validation_error("Bracket has no group stage")
        config = load_config(snapshot.bracket) or GroupsKnockoutConfig()
        return Ok(bracket_views.groups_state(snapshot, config))

    # ========================================================================
    # Groups -> knockout
    # ========================================================================

    def generate_knockout_from_groups(
        self, tournament_id: int, category_id: int, actor_id: Optional[str] = None
    ) -> Result[BracketWithMatches]:
        """
        Promote the top advancing_per_group teams of every group (plus wildcards)
        into a knockout appended after the group matches.

        Seeds go tier by tier: all group winners first, ranked among themselves
        by points, point difference and games won, then all runners-up, and so
        on. Wildcards are the best teams at position advancing_per_group + 1.
        """
        snapshot = self.repository.get_bracket_with_matches(tournament_id, category_id)
        if snapshot is None:
            return not_found("Bracket not found")
        bracket = snapshot.bracket
        config = load_config(bracket)
        if config is None:
            return state_conflict("Invalid bracket config")

        if any(m.group_number is None for m in snapshot.matches):
            return state_conflict("Knockout phase already generated")
        group_matches = [m for m in snapshot.matches if m.group_number is not None]
        incomplete = [m for m in group_matches if m.status not in (MatchStatus.completed.value, MatchStatus.forfeit.value)]
        if incomplete:
            return state_conflict(f"Cannot generate knockout: {len(incomplete)} group matches still incomplete")

        try:
            standings = self.standings.recalculate(bracket)
        except (BracketEngineError, SQLAlchemyError) as exc:
            return err_from_exception(exc)

        by_group: Dict[int, list] = {}
        for standing in standings:
            if standing.group_number is not None and standing.team_id is not None:
                by_group.setdefault(standing.group_number, []).append(standing)
        for rows in by_group.values():
            rows.sort(key=lambda s: s.position)

        seeds: List[TeamSeed] = []
        origin_groups: Dict[int, Optional[int]] = {}
        for position in range(1, config.advancing_per_group + 1):
            tier = []
            for group_number in sorted(by_group):
                rows = by_group[group_number]
                if len(rows) < position:
                    return state_conflict(f"No team at position {position} in group {group_number}")
                tier.append(rows[position - 1])
            for standing in sorted(tier, key=_tier_key):
                seeds.append(TeamSeed(team_id=standing.team_id, seed=len(seeds) + 1))
                origin_groups[standing.team_id] = standing.group_number

        if config.wildcard_count > 0:
            wildcard_position = config.advancing_per_group + 1
            candidates = [
                rows[wildcard_position - 1]
                for _, rows in sorted(by_group.items())
                if len(rows) >= wildcard_position
            ]
            for standing in sorted(candidates, key=_tier_key)[: config.wildcard_count]:
                seeds.append(TeamSeed(team_id=standing.team_id, seed=len(seeds) + 1))
                origin_groups[standing.team_id] = standing.group_number

        if len(seeds) < 2:
            return validation_error("At least 2 advancing teams required to generate a knockout")

        placed = place_anti_rematch(seeds, origin_groups)
        residual = [meeting for meeting in same_group_meetings(placed, origin_groups) if meeting[2] == 1]
        if residual:
            logger.warning(
                "Knockout for bracket %s keeps %d first-round rematch(es): %s", bracket.id, len(residual), residual
            )

        offset = max((m.match_number for m in snapshot.matches), default=0)
        generated = place_seeds(placed, match_number_offset=offset)

        try:
            created = self._persist(bracket.id, generated)
        except (BracketEngineError, SQLAlchemyError) as exc:
            logger.exception("Persisting knockout phase for bracket %s failed, rolling back", bracket.id)
            knockout_ids = [m.id for m in self.repository.get_matches_by_bracket_id(bracket.id) if m.group_number is None]
            self._compensate(bracket.id, match_ids=knockout_ids)
            return Err(ErrorKind.persistence_failure, f"Failed to create knockout matches: {exc}")

        logger.info("Promoted %d teams from groups to knockout in bracket %s", len(placed), bracket.id)
        self.audit_log.log(
            "bracket",
            bracket.id,
            "generate_knockout",
            actor_id,
            {"knockout_matches": len(created), "advancing_teams": len(placed)},
        )
        return self.get_bracket(tournament_id, category_id)

    def delete_knockout_phase(
        self, tournament_id: int, category_id: int, actor_id: Optional[str] = None
    ) -> Result[int]:
        """Drop every knockout match, keeping the group stage. Refused once a knockout match was played."""
        snapshot = self.repository.get_bracket_with_matches(tournament_id, category_id)
        if snapshot is None:
            return not_found("Bracket not found")

        knockout = [m for m in snapshot.matches if m.group_number is None]
        if not knockout:
            return state_conflict("No knockout phase found to delete")
        played = [m for m in knockout if m.status in PLAYED_STATUSES and not m.is_bye]
        if played:
            return state_conflict(
                f"Cannot delete knockout phase: {len(played)} match(es) already started or completed"
            )

        try:
            deleted = self.repository.delete_matches_by_ids([m.id for m in knockout])
        except (BracketEngineError, SQLAlchemyError) as exc:
            return err_from_exception(exc)

        self.audit_log.log("bracket", snapshot.bracket.id, "delete_knockout", actor_id, {"deleted_matches": deleted})
        return Ok(deleted)

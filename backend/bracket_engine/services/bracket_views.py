"""
Read-side views assembled from a bracket snapshot.
"""
from collections import defaultdict
from typing import Dict, List

from bracket_engine.repositories.bracket_repository import BracketSnapshot
from bracket_engine.schemas import (
    BracketRead,
    BracketWithMatches,
    GroupsKnockoutConfig,
    GroupsState,
    GroupState,
    MatchRead,
    StandingRead,
)
from bracket_engine.services.round_robin import group_name


def bracket_with_matches(snapshot: BracketSnapshot) -> BracketWithMatches:
    return BracketWithMatches(
        bracket=BracketRead.model_validate(snapshot.bracket),
        matches=[MatchRead.model_validate(m) for m in snapshot.matches],
        standings=[StandingRead.model_validate(s) for s in snapshot.standings],
    )


def groups_state(snapshot: BracketSnapshot, config: GroupsKnockoutConfig) -> GroupsState:
    """
    Per-group teams, matches and standings, plus the current phase.

    Team order within a group follows the standing positions.
    """
    matches_by_group: Dict[int, List[MatchRead]] = defaultdict(list)
    knockout_generated = False
    for match in snapshot.matches:
        if match.group_number is None:
            knockout_generated = True
            continue
        matches_by_group[match.group_number].append(MatchRead.model_validate(match))

    standings_by_group: Dict[int, List[StandingRead]] = defaultdict(list)
    for standing in snapshot.standings:
        if standing.group_number is not None:
            standings_by_group[standing.group_number].append(StandingRead.model_validate(standing))

    group_numbers = sorted(set(matches_by_group) | set(standings_by_group))
    groups: List[GroupState] = []
    for number in group_numbers:
        standings = sorted(standings_by_group[number], key=lambda s: (s.position, s.id))
        team_ids = [s.team_id for s in standings if s.team_id is not None]
        if not team_ids:
            for match in matches_by_group[number]:
                for team_id in (match.team1_id, match.team2_id):
                    if team_id is not None and team_id not in team_ids:
                        team_ids.append(team_id)
        groups.append(
            GroupState(
                group_number=number,
                group_name=group_name(number),
                team_ids=team_ids,
                matches=sorted(matches_by_group[number], key=lambda m: m.match_number),
                standings=standings,
            )
        )

    return GroupsState(
        bracket_id=snapshot.bracket.id,
        config=config,
        groups=groups,
        phase="knockout" if knockout_generated else "groups",
        knockout_generated=knockout_generated,
    )

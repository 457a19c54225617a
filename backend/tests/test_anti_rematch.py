"""
Tests for anti-rematch placement of teams promoted from groups.
"""

from bracket_engine.services.anti_rematch import place_anti_rematch, same_group_meetings
from bracket_engine.services.seed_placement import TeamSeed


def _seeds(team_ids):
    return [TeamSeed(team_id=team_id, seed=index + 1) for index, team_id in enumerate(team_ids)]


def test_two_groups_meet_only_in_final():
    """A1 vs A2 in round 1 is moved apart so both pairs can only meet in the final"""
    # seed 1 A1, seed 2 B1, seed 3 B2, seed 4 A2 -> 1 vs 4 and 2 vs 3 are both rematches
    seeds = _seeds([11, 21, 22, 12])
    groups = {11: 1, 12: 1, 21: 2, 22: 2}

    assert sorted(m[2] for m in same_group_meetings(seeds, groups)) == [1, 1]

    placed = place_anti_rematch(seeds, groups)

    assert [s.team_id for s in placed] == [11, 21, 12, 22]
    assert all(meeting[2] == 2 for meeting in same_group_meetings(placed, groups))


def test_four_groups_split_into_halves():
    """Eight teams, two per group: every pair ends up in opposite halves"""
    winners = [11, 21, 31, 41]
    runners_up = [12, 22, 32, 42]
    seeds = _seeds(winners + runners_up)
    groups = {team_id: team_id // 10 for team_id in winners + runners_up}

    placed = place_anti_rematch(seeds, groups)

    assert sorted(s.team_id for s in placed) == sorted(winners + runners_up)
    assert [s.seed for s in placed] == list(range(1, 9))
    # Group winners keep the top seeds
    assert [s.team_id for s in placed[:4]] == winners
    assert all(meeting[2] == 3 for meeting in same_group_meetings(placed, groups))


def test_three_teams_from_one_group_avoid_round_one():
    seeds = _seeds([11, 21, 12, 22, 13, 23])
    groups = {11: 1, 12: 1, 13: 1, 21: 2, 22: 2, 23: 2}

    placed = place_anti_rematch(seeds, groups)

    assert sorted(s.team_id for s in placed) == sorted(groups)
    assert not [m for m in same_group_meetings(placed, groups) if m[2] == 1]


def test_no_group_is_never_a_conflict():
    seeds = _seeds([5, 6, 7, 8])
    groups = {5: 0, 6: 0, 7: None, 8: 0}

    placed = place_anti_rematch(seeds, groups)

    assert placed == seeds
    assert same_group_meetings(placed, groups) == []


def test_unavoidable_conflict_is_kept():
    """Two teams, same group: nothing to swap with, placement is returned unchanged"""
    seeds = _seeds([11, 12])
    groups = {11: 1, 12: 1}

    placed = place_anti_rematch(seeds, groups)

    assert placed == seeds
    assert same_group_meetings(placed, groups) == [(11, 12, 1)]


def test_single_team():
    seeds = _seeds([11])
    assert place_anti_rematch(seeds, {11: 1}) == seeds

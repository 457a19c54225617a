"""
Anti-rematch placement for knockouts promoted from a group stage.

Reassigns seed numbers (never the slot layout) so that teams sharing an origin
group sit in different halves, or different quarters for groups sending three
or more teams, and never face each other in round 1.

Best effort: when the bracket geometry cannot separate everyone, the
remaining conflicts are kept, not raised; same_group_meetings lists them.
Group 0 or a missing group means "no group" and never conflicts with anything.
"""
from __future__ import annotations

from collections import Counter, defaultdict
from itertools import combinations
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from bracket_engine.services.seed_placement import (
    TeamSeed,
    bracket_seed_positions,
    earliest_meeting_round,
    next_power_of_two,
)

MAX_PASSES = 3


class _Placement:
    """Mutable seed <-> team assignment over a fixed slot layout."""

    def __init__(self, seeds: Sequence[TeamSeed], origin_groups: Mapping[int, Optional[int]]):
        self.bracket_size = next_power_of_two(len(seeds))
        self.positions = bracket_seed_positions(self.bracket_size)
        self.slot_of_seed = {seed: slot for slot, seed in enumerate(self.positions)}
        self.team_at_seed: Dict[int, int] = {s.seed: s.team_id for s in seeds}
        self.seed_of_team: Dict[int, int] = {s.team_id: s.seed for s in seeds}
        self.group_of: Dict[int, int] = {team_id: g for team_id, g in origin_groups.items() if g}

        self.half_counts: Counter = Counter()
        self.quarter_counts: Counter = Counter()
        for team_id in self.seed_of_team:
            self._count(team_id, 1)

    @property
    def quarter_count(self) -> int:
        return min(4, self.bracket_size)

    def group(self, team_id: Optional[int]) -> Optional[int]:
        if team_id is None:
            return None
        return self.group_of.get(team_id)

    def slot(self, team_id: int) -> int:
        return self.slot_of_seed[self.seed_of_team[team_id]]

    def half(self, team_id: int) -> int:
        return self.slot(team_id) // max(self.bracket_size // 2, 1)

    def quarter(self, team_id: int) -> int:
        return self.slot(team_id) // max(self.bracket_size // 4, 1)

    def teams_by_seed(self) -> List[int]:
        return [self.team_at_seed[seed] for seed in sorted(self.team_at_seed)]

    def _count(self, team_id: int, delta: int) -> None:
        g = self.group(team_id)
        if g is None:
            return
        self.half_counts[(self.half(team_id), g)] += delta
        self.quarter_counts[(self.quarter(team_id), g)] += delta

    def swap(self, team_a: int, team_b: int) -> None:
        self._count(team_a, -1)
        self._count(team_b, -1)
        seed_a, seed_b = self.seed_of_team[team_a], self.seed_of_team[team_b]
        self.seed_of_team[team_a], self.seed_of_team[team_b] = seed_b, seed_a
        self.team_at_seed[seed_a], self.team_at_seed[seed_b] = team_b, team_a
        self._count(team_a, 1)
        self._count(team_b, 1)

    def as_seeds(self) -> List[TeamSeed]:
        return [TeamSeed(team_id=self.team_at_seed[seed], seed=seed) for seed in sorted(self.team_at_seed)]


def _separate_pair(p: _Placement, group: int, members: List[int]) -> bool:
    """Two teams from one group: push the lower-seeded one into the other half."""
    first, second = members
    if p.half(first) != p.half(second):
        return False

    target_half = 1 - p.half(second)
    moved_seed = p.seed_of_team[second]
    source_half = p.half(second)

    def sort_key(candidate: int) -> Tuple[int, int, int]:
        c_group = p.group(candidate)
        creates_conflict = int(c_group is not None and p.half_counts[(source_half, c_group)] > 0)
        return creates_conflict, abs(p.seed_of_team[candidate] - moved_seed), p.seed_of_team[candidate]

    candidates = [
        t for t in p.teams_by_seed()
        if t != second and p.half(t) == target_half and p.group(t) != group
    ]
    if not candidates:
        return False
    p.swap(second, min(candidates, key=sort_key))
    return True


def _spread_quarters(p: _Placement, group: int, members: List[int]) -> bool:
    """Three or more teams from one group: walk in seed order, moving repeats to unused quarters."""
    swapped = False
    for i in range(1, len(members)):
        team = members[i]
        earlier_quarters = {p.quarter(m) for m in members[:i]}
        current_quarter = p.quarter(team)
        if current_quarter not in earlier_quarters:
            continue

        free_quarter = next((q for q in range(p.quarter_count) if q not in earlier_quarters), None)
        if free_quarter is None:
            continue

        candidates = [
            t for t in p.teams_by_seed()
            if p.quarter(t) == free_quarter
            and p.group(t) != group
            and (p.group(t) is None or p.quarter_counts[(current_quarter, p.group(t))] == 0)
        ]
        if candidates:
            p.swap(team, candidates[0])
            swapped = True
    return swapped


def _resolve_first_round(p: _Placement) -> None:
    """Safety net: break any remaining round-1 pairing of two same-group teams."""
    pairs = [(p.positions[i], p.positions[i + 1]) for i in range(0, p.bracket_size, 2)]

    for i, (seed1, seed2) in enumerate(pairs):
        team1 = p.team_at_seed.get(seed1)
        team2 = p.team_at_seed.get(seed2)
        group = p.group(team1)
        if team2 is None or group is None or group != p.group(team2):
            continue

        for j, (other1, other2) in enumerate(pairs):
            if j == i:
                continue
            replaced = False
            for other_seed, partner_seed in ((other2, other1), (other1, other2)):
                other = p.team_at_seed.get(other_seed)
                if other is None or p.group(other) == group:
                    continue
                if p.group(p.team_at_seed.get(partner_seed)) == group:
                    continue
                p.swap(team2, other)
                replaced = True
                break
            if replaced:
                break


def place_anti_rematch(seeds: Sequence[TeamSeed], origin_groups: Mapping[int, Optional[int]]) -> List[TeamSeed]:
    """
    Return the same teams with seed numbers reassigned to keep origin groups apart.

    Groups sending the most teams are handled first. The passes are bounded;
    whatever cannot be separated is logged and left in place.
    """
    if len(seeds) <= 1:
        return sorted(seeds, key=lambda s: s.seed)

    p = _Placement(seeds, origin_groups)

    by_group: Dict[int, List[int]] = defaultdict(list)
    for team_id in p.teams_by_seed():
        g = p.group(team_id)
        if g is not None:
            by_group[g].append(team_id)
    ordered_groups = sorted(by_group.items(), key=lambda item: (-len(item[1]), item[0]))

    for _ in range(MAX_PASSES):
        swapped = False
        for group, members in ordered_groups:
            if len(members) < 2:
                continue
            members = sorted(members, key=lambda t: p.seed_of_team[t])
            if len(members) == 2:
                swapped |= _separate_pair(p, group, members)
            else:
                swapped |= _spread_quarters(p, group, members)
        if not swapped:
            break

    _resolve_first_round(p)

    return p.as_seeds()


def same_group_meetings(
    seeds: Sequence[TeamSeed], origin_groups: Mapping[int, Optional[int]]
) -> List[Tuple[int, int, int]]:
    """(team_a, team_b, earliest_round) for every pair of teams sharing an origin group."""
    bracket_size = next_power_of_two(len(seeds))
    slot_of_seed = {seed: slot for slot, seed in enumerate(bracket_seed_positions(bracket_size))}

    by_group: Dict[int, List[TeamSeed]] = defaultdict(list)
    for s in seeds:
        g = origin_groups.get(s.team_id)
        if g:
            by_group[g].append(s)

    meetings: List[Tuple[int, int, int]] = []
    for group in sorted(by_group):
        for a, b in combinations(sorted(by_group[group], key=lambda s: s.seed), 2):
            meetings.append((a.team_id, b.team_id, earliest_meeting_round(slot_of_seed[a.seed], slot_of_seed[b.seed])))
    return meetings

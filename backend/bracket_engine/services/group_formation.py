"""
Automatic group formation for a group stage.

Splits a seeded team list into groups of 3 and 4 and distributes the teams
with snake seeding so every group gets a comparable spread of seeds.
"""

from typing import List, Optional, Sequence

from bracket_engine.schemas import GroupAssignment, GroupsKnockoutConfig

# ============================================================================
# Group sizes
# ============================================================================


def compute_group_sizes(team_count: int) -> List[int]:
    """
    Group sizes using groups of 3 and 4 only, as evenly as possible.

    Deterministic rule:
    - fewer than 4 teams -> no groups
    - 4 teams -> one group of 4
    - 5 teams -> one group of 5
    - otherwise r = team_count % 3 decides the groups of 4:
      r == 0 -> none, r == 1 -> one, r == 2 -> two; the rest are groups of 3

    Groups of 3 come first.

    Examples:
    - 6 teams -> [3, 3]
    - 7 teams -> [3, 4]
    - 8 teams -> [4, 4]
    - 11 teams -> [3, 4, 4]
    """
    if team_count < 4:
        return []
    if team_count == 4:
        return [4]
    if team_count == 5:
        return [5]

    remainder = team_count % 3
    groups_of_4 = {0: 0, 1: 1}.get(remainder, 2)
    groups_of_3 = (team_count - groups_of_4 * 4) // 3
    return [3] * groups_of_3 + [4] * groups_of_4


def config_group_sizes(config: Optional[GroupsKnockoutConfig], team_count: int) -> List[int]:
    """Sizes from an explicit config (group_count x teams_per_group), else the automatic rule."""
    if config is not None and config.group_count > 0 and config.teams_per_group > 0:
        return [config.teams_per_group] * config.group_count
    return compute_group_sizes(team_count)


# ============================================================================
# Snake seeding
# ============================================================================


def snake_assign(team_ids: Sequence[int], group_sizes: Sequence[int]) -> List[GroupAssignment]:
    """
    Distribute teams (in seed order) across groups in alternating passes.

    Pass 1 goes left to right, pass 2 right to left, and so on. Groups that
    already hold their target size are skipped. Teams beyond the total
    capacity are left out; callers check capacity first.

    Args:
        team_ids: Teams in seed order
        group_sizes: Target size of each group

    Returns:
        One GroupAssignment per group, group numbers starting at 1
    """
    groups: List[List[int]] = [[] for _ in group_sizes]
    if not groups:
        return []

    capacity = sum(group_sizes)
    forward = True
    index = 0
    pending = list(team_ids[:capacity])

    while index < len(pending):
        order = range(len(groups)) if forward else range(len(groups) - 1, -1, -1)
        for group_index in order:
            if index >= len(pending):
                break
            if len(groups[group_index]) >= group_sizes[group_index]:
                continue
            groups[group_index].append(pending[index])
            index += 1
        forward = not forward

    return [
        GroupAssignment(group_number=group_index + 1, team_ids=members)
        for group_index, members in enumerate(groups)
    ]

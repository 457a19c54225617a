"""
Round robin match generation for a single group.
"""

from string import ascii_uppercase
from typing import List, Sequence

from bracket_engine.services.seed_placement import GeneratedMatch


def round_robin_match_count(n: int) -> int:
    """Round robin match count: n * (n-1) / 2"""
    return (n * (n - 1)) // 2


def group_name(group_number: int) -> str:
    """
    Display label for a 1-based group number.

    1 -> "Group A", 2 -> "Group B", ... past 26 falls back to the number.
    """
    if 1 <= group_number <= len(ascii_uppercase):
        return f"Group {ascii_uppercase[group_number - 1]}"
    return f"Group {group_number}"


def generate_round_robin(team_ids: Sequence[int], group_number: int, start_match_number: int) -> List[GeneratedMatch]:
    """
    Every unordered pair of the group's teams, once.

    Pairs are emitted in index order (i < j), all in round 1 with sequential
    match numbers starting at start_match_number. Group matches never link
    forward.

    Args:
        team_ids: Teams of the group, in seed order
        group_number: 1-based group number stored on each match
        start_match_number: match_number of the first generated match

    Returns:
        n*(n-1)/2 GeneratedMatch entries
    """
    label = group_name(group_number)
    matches: List[GeneratedMatch] = []
    match_number = start_match_number

    for i in range(len(team_ids)):
        for j in range(i + 1, len(team_ids)):
            matches.append(
                GeneratedMatch(
                    round_number=1,
                    match_number=match_number,
                    round_name=label,
                    team1_id=team_ids[i],
                    team2_id=team_ids[j],
                    group_number=group_number,
                )
            )
            match_number += 1

    return matches

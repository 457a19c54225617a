"""
Single-elimination skeleton from ranked seeds.

Slots follow the standard bracket fold so that, if chalk holds, seeds 1 and 2
meet only in the final, seeds 1-4 only from the semifinals, and so on.
Missing seeds (bracket size above the team count) become byes.

The output is an abstract match graph keyed by match_number; forward links
are expressed as next_match_number/next_match_position and resolved to
stored ids after persistence.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from bracket_engine.models.match import MatchStatus

ROUND_NAMES_FROM_FINAL = {
    1: "Final",
    2: "Semifinals",
    3: "Quarterfinals",
    4: "Round of 16",
    5: "Round of 32",
}


@dataclass(frozen=True)
class TeamSeed:
    team_id: int
    seed: int


@dataclass
class GeneratedMatch:
    round_number: int
    match_number: int
    round_name: Optional[str]
    team1_id: Optional[int]
    team2_id: Optional[int]
    is_bye: bool = False
    status: str = MatchStatus.pending.value
    next_match_number: Optional[int] = None
    next_match_position: Optional[int] = None  # 1 = team1, 2 = team2
    group_number: Optional[int] = None


def next_power_of_two(n: int) -> int:
    size = 1
    while size < n:
        size *= 2
    return size


def bracket_seed_positions(bracket_size: int) -> List[int]:
    """
    Seed number occupying each slot, in slot order.

      2 -> [1, 2]
      4 -> [1, 4, 2, 3]
      8 -> [1, 8, 4, 5, 2, 7, 3, 6]

    Adjacent slots meet in round 1.
    """
    if bracket_size <= 1:
        return [1] if bracket_size == 1 else []
    if bracket_size == 2:
        return [1, 2]

    top = bracket_seed_positions(bracket_size // 2)
    positions: List[int] = []
    for seed in top:
        positions.append(seed)
        positions.append(bracket_size + 1 - seed)
    return positions


def total_rounds(bracket_size: int) -> int:
    return max(bracket_size.bit_length() - 1, 0)


def round_name(round_number: int, rounds: int) -> str:
    rounds_from_final = rounds - round_number + 1
    return ROUND_NAMES_FROM_FINAL.get(rounds_from_final, f"Round {round_number}")


def earliest_meeting_round(slot_a: int, slot_b: int) -> int:
    """Round in which two 0-based slots can first meet."""
    return (slot_a ^ slot_b).bit_length()


def place_seeds(teams: Sequence[TeamSeed], match_number_offset: int = 0) -> List[GeneratedMatch]:
    """
    Build every round of a knockout bracket for the seeded teams.

    Match numbers start at match_number_offset + 1 and increase round over
    round; next_match_number values carry the same offset. Round-1 matches
    with a single team are byes; later rounds hold TBD placeholders.
    """
    if len(teams) < 2:
        return []

    bracket_size = next_power_of_two(len(teams))
    rounds = total_rounds(bracket_size)
    team_by_seed: Dict[int, int] = {t.seed: t.team_id for t in teams}
    slots = [team_by_seed.get(seed) for seed in bracket_seed_positions(bracket_size)]

    matches: List[GeneratedMatch] = []
    by_number: Dict[int, GeneratedMatch] = {}
    match_number = match_number_offset + 1

    for i in range(bracket_size // 2):
        team1 = slots[2 * i]
        team2 = slots[2 * i + 1]
        is_bye = team1 is None or team2 is None
        generated = GeneratedMatch(
            round_number=1,
            match_number=match_number,
            round_name=round_name(1, rounds),
            team1_id=team1,
            team2_id=team2,
            is_bye=is_bye,
            status=MatchStatus.bye.value if is_bye else MatchStatus.pending.value,
        )
        matches.append(generated)
        by_number[match_number] = generated
        match_number += 1

    previous_round_count = bracket_size // 2
    for round_number in range(2, rounds + 1):
        round_count = previous_round_count // 2
        previous_first = match_number - previous_round_count

        for i in range(round_count):
            generated = GeneratedMatch(
                round_number=round_number,
                match_number=match_number,
                round_name=round_name(round_number, rounds),
                team1_id=None,
                team2_id=None,
            )
            matches.append(generated)
            by_number[match_number] = generated

            feeder1 = by_number[previous_first + 2 * i]
            feeder2 = by_number[previous_first + 2 * i + 1]
            feeder1.next_match_number, feeder1.next_match_position = match_number, 1
            feeder2.next_match_number, feeder2.next_match_position = match_number, 2
            match_number += 1

        previous_round_count = round_count

    return matches

"""
Advancement: when a match is decided, put its winner into the next match slot.

Knockout only (group matches carry no next_match_id). These helpers mutate
rows through the session but never commit; the repository runs them inside
its own transaction.
"""
import logging
from datetime import datetime
from typing import List, Optional

from sqlmodel import Session, select

from bracket_engine.models.match import DECIDED_STATUSES, Match, MatchStatus

logger = logging.getLogger(__name__)


def set_slot(match: Match, position: Optional[int], team_id: Optional[int]) -> bool:
    """Write team_id into slot 1 or 2. Returns True if the slot changed."""
    if position == 1:
        if match.team1_id == team_id:
            return False
        match.team1_id = team_id
        return True
    if position == 2:
        if match.team2_id == team_id:
            return False
        match.team2_id = team_id
        return True
    return False


def place_in_next_match(session: Session, match: Match, team_id: int) -> Optional[Match]:
    """
    Put team_id into the slot of match.next_match_id that match feeds.

    If the next match is already a forfeit waiting for this slot (its other
    team withdrew before an opponent was known), the arriving team wins it
    and keeps advancing.

    Returns the next match, or None when match has no forward link.
    """
    if match.next_match_id is None:
        return None
    next_match = session.get(Match, match.next_match_id)
    if next_match is None:
        logger.warning("Match %s links to missing next match %s", match.id, match.next_match_id)
        return None

    if set_slot(next_match, match.next_match_position, team_id):
        next_match.version += 1
        session.add(next_match)

    if next_match.status == MatchStatus.forfeit.value and next_match.winner_team == match.next_match_position:
        place_in_next_match(session, next_match, team_id)

    return next_match


def advance_decided_match(session: Session, match: Match) -> Optional[Match]:
    """Advance the winner of a completed/forfeit match. No-op when undecided or unlinked."""
    if match.status not in DECIDED_STATUSES:
        return None
    winner_id = match.winner_team_id()
    if winner_id is None:
        return None
    return place_in_next_match(session, match, winner_id)


def clear_advanced_slot(session: Session, match: Match, team_id: Optional[int]) -> Optional[Match]:
    """Undo advancement: empty the next match slot if it still holds team_id."""
    if match.next_match_id is None or team_id is None:
        return None
    next_match = session.get(Match, match.next_match_id)
    if next_match is None:
        return None
    if next_match.team_id_at(match.next_match_position) == team_id:
        set_slot(next_match, match.next_match_position, None)
        next_match.version += 1
        session.add(next_match)
    return next_match


def resolve_byes(session: Session, bracket_id: int) -> List[Match]:
    """
    Complete every bye of a bracket and advance the present team.

    A bye is won 0-0 with no sets by the only team in it. Matches are taken
    in round order so a bye created further down a chain sees its team
    arrive first. Byes with no team at all are left untouched.

    Returns the matches resolved.
    """
    byes = session.exec(
        select(Match)
        .where(Match.bracket_id == bracket_id, Match.status == MatchStatus.bye.value)
        .order_by(Match.round_number, Match.match_number)
    ).all()

    resolved: List[Match] = []
    for match in byes:
        if match.team1_id is not None and match.team2_id is None:
            match.winner_team = 1
        elif match.team2_id is not None and match.team1_id is None:
            match.winner_team = 2
        else:
            continue

        match.status = MatchStatus.completed.value
        match.is_bye = True
        match.score_team1 = 0
        match.score_team2 = 0
        match.set_scores = []
        match.completed_at = datetime.utcnow()
        match.version += 1
        session.add(match)

        place_in_next_match(session, match, match.winner_team_id())
        resolved.append(match)

    return resolved

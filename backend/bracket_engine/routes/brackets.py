"""
HTTP surface for bracket generation and progression.

Handlers are thin: build the service for the request session, call it, and
turn an Err result into an HTTPException with the matching status code.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import BaseModel, Field
from sqlmodel import Session

from bracket_engine.database import get_session
from bracket_engine.models.bracket import BracketFormat, SeedingMethod
from bracket_engine.repositories.audit_log import AuditLog
from bracket_engine.repositories.bracket_repository import BracketRepository
from bracket_engine.schemas import (
    BracketRead,
    BracketWithMatches,
    GroupAssignment,
    GroupsKnockoutConfig,
    GroupsState,
    MatchRead,
    MatchScoreResult,
    SetScore,
    StandingRead,
    WithdrawTeamResult,
)
from bracket_engine.services.bracket_generation import BracketGenerationEngine
from bracket_engine.services.bracket_progression import BracketProgressionService
from bracket_engine.services.result import Err, ErrorKind, Result
from bracket_engine.services.standings_service import StandingsService

router = APIRouter()

ERROR_STATUS = {
    ErrorKind.validation: 422,
    ErrorKind.state_conflict: 409,
    ErrorKind.not_found: 404,
    ErrorKind.concurrency_conflict: 409,
    ErrorKind.forbidden: 403,
    ErrorKind.persistence_failure: 500,
}

BRACKET_PATH = "/tournaments/{tournament_id}/categories/{category_id}/bracket"


def unwrap(result: Result):
    if isinstance(result, Err):
        raise HTTPException(status_code=ERROR_STATUS[result.kind], detail=result.message)
    return result.value


# ============================================================================
# Dependencies
# ============================================================================


def get_standings_service(session: Session = Depends(get_session)) -> StandingsService:
    return StandingsService(BracketRepository(session))


def get_generation_engine(session: Session = Depends(get_session)) -> BracketGenerationEngine:
    repository = BracketRepository(session)
    return BracketGenerationEngine(repository, AuditLog(session), StandingsService(repository))


def get_progression_service(session: Session = Depends(get_session)) -> BracketProgressionService:
    repository = BracketRepository(session)
    return BracketProgressionService(repository, AuditLog(session), StandingsService(repository))


# ============================================================================
# Request bodies
# ============================================================================


class BracketCreate(BaseModel):
    format: str = BracketFormat.knockout.value
    seeding_method: str = SeedingMethod.manual.value
    config: Optional[GroupsKnockoutConfig] = None


class KnockoutGenerate(BaseModel):
    seeding_method: str = SeedingMethod.manual.value
    team_ids: List[int]


class GroupStageGenerate(BaseModel):
    groups: List[GroupAssignment]
    config: GroupsKnockoutConfig


class GroupStageAutoGenerate(BaseModel):
    team_ids: List[int]
    config: Optional[GroupsKnockoutConfig] = None


class TeamSwap(BaseModel):
    team1_id: int
    team2_id: int


class TeamWithdraw(BaseModel):
    team_id: int
    reason: Optional[str] = None


class ScoreUpdate(BaseModel):
    set_scores: List[SetScore] = Field(default_factory=list)
    expected_version: Optional[int] = None


class PlayerScoreSubmit(ScoreUpdate):
    user_id: str


class MatchStatusUpdate(BaseModel):
    status: str
    expected_version: Optional[int] = None


# ============================================================================
# Brackets
# ============================================================================


@router.get("/tournaments/{tournament_id}/brackets", response_model=List[BracketRead])
def list_brackets(tournament_id: int, engine: BracketGenerationEngine = Depends(get_generation_engine)):
    return unwrap(engine.get_brackets_by_tournament(tournament_id))


@router.post(BRACKET_PATH, response_model=BracketRead, status_code=201)
def create_bracket(
    tournament_id: int,
    category_id: int,
    body: BracketCreate,
    actor_id: Optional[str] = Header(default=None, alias="X-Actor-Id"),
    engine: BracketGenerationEngine = Depends(get_generation_engine),
):
    return unwrap(
        engine.create_bracket(tournament_id, category_id, body.format, body.seeding_method, body.config, actor_id)
    )


@router.get(BRACKET_PATH, response_model=BracketWithMatches)
def get_bracket(tournament_id: int, category_id: int, engine: BracketGenerationEngine = Depends(get_generation_engine)):
    return unwrap(engine.get_bracket(tournament_id, category_id))


@router.delete("/brackets/{bracket_id}", status_code=204)
def delete_bracket(
    bracket_id: int,
    actor_id: Optional[str] = Header(default=None, alias="X-Actor-Id"),
    engine: BracketGenerationEngine = Depends(get_generation_engine),
):
    unwrap(engine.delete_bracket(bracket_id, actor_id))


@router.post(BRACKET_PATH + "/publish", response_model=BracketRead)
def publish_bracket(
    tournament_id: int,
    category_id: int,
    actor_id: Optional[str] = Header(default=None, alias="X-Actor-Id"),
    engine: BracketGenerationEngine = Depends(get_generation_engine),
):
    return unwrap(engine.publish_bracket(tournament_id, category_id, actor_id))


@router.post(BRACKET_PATH + "/unpublish", response_model=BracketRead)
def unpublish_bracket(
    tournament_id: int,
    category_id: int,
    actor_id: Optional[str] = Header(default=None, alias="X-Actor-Id"),
    engine: BracketGenerationEngine = Depends(get_generation_engine),
):
    return unwrap(engine.unpublish_bracket(tournament_id, category_id, actor_id))


@router.post(BRACKET_PATH + "/generate", response_model=BracketWithMatches)
def generate_knockout(
    tournament_id: int,
    category_id: int,
    body: KnockoutGenerate,
    actor_id: Optional[str] = Header(default=None, alias="X-Actor-Id"),
    engine: BracketGenerationEngine = Depends(get_generation_engine),
):
    return unwrap(engine.generate_knockout(tournament_id, category_id, body.seeding_method, body.team_ids, actor_id))


@router.post(BRACKET_PATH + "/resolve-byes")
def resolve_byes(tournament_id: int, category_id: int, engine: BracketGenerationEngine = Depends(get_generation_engine)):
    return {"resolved": unwrap(engine.resolve_byes(tournament_id, category_id))}


# ============================================================================
# Groups
# ============================================================================


@router.post(BRACKET_PATH + "/groups", response_model=BracketWithMatches)
def generate_group_stage(
    tournament_id: int,
    category_id: int,
    body: GroupStageGenerate,
    actor_id: Optional[str] = Header(default=None, alias="X-Actor-Id"),
    engine: BracketGenerationEngine = Depends(get_generation_engine),
):
    return unwrap(engine.generate_group_stage(tournament_id, category_id, body.groups, body.config, actor_id))


@router.post(BRACKET_PATH + "/groups/auto", response_model=BracketWithMatches)
def generate_group_stage_auto(
    tournament_id: int,
    category_id: int,
    body: GroupStageAutoGenerate,
    actor_id: Optional[str] = Header(default=None, alias="X-Actor-Id"),
    engine: BracketGenerationEngine = Depends(get_generation_engine),
):
    return unwrap(engine.generate_group_stage_auto(tournament_id, category_id, body.team_ids, body.config, actor_id))


@router.get(BRACKET_PATH + "/groups", response_model=GroupsState)
def get_groups_state(
    tournament_id: int, category_id: int, engine: BracketGenerationEngine = Depends(get_generation_engine)
):
    return unwrap(engine.get_groups_state(tournament_id, category_id))


@router.post(BRACKET_PATH + "/groups/swap", response_model=GroupsState)
def swap_teams_in_groups(
    tournament_id: int,
    category_id: int,
    body: TeamSwap,
    actor_id: Optional[str] = Header(default=None, alias="X-Actor-Id"),
    service: BracketProgressionService = Depends(get_progression_service),
):
    return unwrap(service.swap_teams_in_groups(tournament_id, category_id, body.team1_id, body.team2_id, actor_id))


@router.post(BRACKET_PATH + "/knockout", response_model=BracketWithMatches)
def generate_knockout_from_groups(
    tournament_id: int,
    category_id: int,
    actor_id: Optional[str] = Header(default=None, alias="X-Actor-Id"),
    engine: BracketGenerationEngine = Depends(get_generation_engine),
):
    return unwrap(engine.generate_knockout_from_groups(tournament_id, category_id, actor_id))


@router.delete(BRACKET_PATH + "/knockout")
def delete_knockout_phase(
    tournament_id: int,
    category_id: int,
    actor_id: Optional[str] = Header(default=None, alias="X-Actor-Id"),
    engine: BracketGenerationEngine = Depends(get_generation_engine),
):
    return {"deleted_matches": unwrap(engine.delete_knockout_phase(tournament_id, category_id, actor_id))}


# ============================================================================
# Standings and withdrawal
# ============================================================================


@router.get(BRACKET_PATH + "/standings", response_model=List[StandingRead])
def get_standings(tournament_id: int, category_id: int, service: StandingsService = Depends(get_standings_service)):
    return unwrap(service.get_standings(tournament_id, category_id))


@router.post(BRACKET_PATH + "/standings/calculate", response_model=List[StandingRead])
def calculate_standings(
    tournament_id: int, category_id: int, service: StandingsService = Depends(get_standings_service)
):
    return unwrap(service.calculate_standings(tournament_id, category_id))


@router.post(BRACKET_PATH + "/withdraw", response_model=WithdrawTeamResult)
def withdraw_team(
    tournament_id: int,
    category_id: int,
    body: TeamWithdraw,
    actor_id: Optional[str] = Header(default=None, alias="X-Actor-Id"),
    service: BracketProgressionService = Depends(get_progression_service),
):
    return unwrap(service.withdraw_team(tournament_id, category_id, body.team_id, body.reason, actor_id))


# ============================================================================
# Matches
# ============================================================================


@router.put("/matches/{match_id}/score", response_model=MatchScoreResult)
def update_score(
    match_id: int,
    body: ScoreUpdate,
    actor_id: Optional[str] = Header(default=None, alias="X-Actor-Id"),
    service: BracketProgressionService = Depends(get_progression_service),
):
    return unwrap(service.update_score(match_id, body.set_scores, body.expected_version, actor_id))


@router.post("/matches/{match_id}/player-score", response_model=MatchScoreResult)
def submit_player_score(
    match_id: int,
    body: PlayerScoreSubmit,
    service: BracketProgressionService = Depends(get_progression_service),
):
    return unwrap(service.submit_player_score(match_id, body.user_id, body.set_scores, body.expected_version))


@router.delete("/matches/{match_id}/score", response_model=MatchRead)
def reset_score(
    match_id: int,
    expected_version: Optional[int] = None,
    actor_id: Optional[str] = Header(default=None, alias="X-Actor-Id"),
    service: BracketProgressionService = Depends(get_progression_service),
):
    return unwrap(service.reset_score(match_id, expected_version, actor_id))


@router.post("/matches/{match_id}/advance", response_model=MatchRead)
def advance_winner(match_id: int, service: BracketProgressionService = Depends(get_progression_service)):
    return unwrap(service.advance_winner(match_id))


@router.patch("/matches/{match_id}/status", response_model=MatchRead)
def update_match_status(
    match_id: int,
    body: MatchStatusUpdate,
    actor_id: Optional[str] = Header(default=None, alias="X-Actor-Id"),
    service: BracketProgressionService = Depends(get_progression_service),
):
    return unwrap(service.update_match_status(match_id, body.status, body.expected_version, actor_id))

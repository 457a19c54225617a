import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from bracket_engine.database import get_session
from bracket_engine.main import app
from bracket_engine.models.team import Team
from bracket_engine.models.tournament import Tournament
from bracket_engine.repositories.audit_log import AuditLog
from bracket_engine.repositories.bracket_repository import BracketRepository
from bracket_engine.services.bracket_generation import BracketGenerationEngine
from bracket_engine.services.bracket_progression import BracketProgressionService
from bracket_engine.services.standings_service import StandingsService

TEST_DATABASE_URL = "sqlite:///:memory:"

# ============================================================================
# Test Database Setup with StaticPool
# ============================================================================
# 1. sqlite:///:memory: with StaticPool so ALL sessions share the same DB
# 2. check_same_thread=False required for TestClient/threaded access
# 3. All models imported before create_all() (see session_fixture)
# 4. App dependency overridden to use test_engine (see client_fixture)
# 5. Tables created per test and dropped afterwards
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


def override_get_session():
    """Override session to use test engine"""
    with Session(test_engine) as session:
        yield session


@pytest.fixture(name="session", scope="function")
def session_fixture():
    """Provide a test database session on a fresh schema"""
    from bracket_engine.models.audit_event import AuditEvent  # noqa: F401
    from bracket_engine.models.bracket import Bracket  # noqa: F401
    from bracket_engine.models.match import Match  # noqa: F401
    from bracket_engine.models.standing import Standing  # noqa: F401

    SQLModel.metadata.create_all(test_engine)

    with Session(test_engine) as session:
        yield session

    SQLModel.metadata.drop_all(test_engine)


@pytest.fixture(name="client")
def client_fixture(session: Session):
    """Provide a test client with overridden database session

    Override MUST be set BEFORE TestClient() and stay in place for the
    entire duration, so the app never touches its own engine.
    """
    app.dependency_overrides[get_session] = override_get_session

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()


# ============================================================================
# Domain fixtures
# ============================================================================


@pytest.fixture
def repository(session: Session) -> BracketRepository:
    return BracketRepository(session)


@pytest.fixture
def standings(repository: BracketRepository) -> StandingsService:
    return StandingsService(repository)


@pytest.fixture
def engine(session: Session, repository: BracketRepository, standings: StandingsService) -> BracketGenerationEngine:
    return BracketGenerationEngine(repository, AuditLog(session), standings)


@pytest.fixture
def progression(
    session: Session, repository: BracketRepository, standings: StandingsService
) -> BracketProgressionService:
    return BracketProgressionService(repository, AuditLog(session), standings)


@pytest.fixture
def tournament(session: Session) -> Tournament:
    tournament = Tournament(name="Open de Primavera", allow_player_scores=True)
    session.add(tournament)
    session.commit()
    session.refresh(tournament)
    return tournament


@pytest.fixture
def make_teams(session: Session, tournament: Tournament):
    """Factory: create n teams in a category, returns their ids in creation (seed) order."""

    created = []

    def _make(n: int, category_id: int = 1) -> list[int]:
        start = len(created) + 1
        teams = [
            Team(
                tournament_id=tournament.id,
                category_id=category_id,
                name=f"Pair {i}",
                player1_uid=f"p{i}a",
                player2_uid=f"p{i}b",
            )
            for i in range(start, start + n)
        ]
        created.extend(teams)
        session.add_all(teams)
        session.commit()
        for team in teams:
            session.refresh(team)
        return [team.id for team in teams]

    return _make

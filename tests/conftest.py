import os

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

# Keep app startup (init_db) off the on-disk database
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

from tourney.database import get_session  # noqa: E402
from tourney.main import app  # noqa: E402
from tourney.models.team import Team  # noqa: E402

TEST_DATABASE_URL = "sqlite:///:memory:"

# ============================================================================
# Test Database Setup with StaticPool
# ============================================================================
# 1. Use sqlite:///:memory: with StaticPool so ALL sessions share same DB
# 2. check_same_thread=False required for TestClient/threaded access
# 3. All models MUST be imported before create_all() (see session_fixture)
# 4. App dependency overridden to use test_engine (see client_fixture)
# 5. Tables created and dropped per test; team ids are caller-chosen slugs
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
    # Import all models to ensure they're registered BEFORE create_all
    from tourney.models.app_setting import AppSetting  # noqa: F401
    from tourney.models.match import Match  # noqa: F401
    from tourney.models.tournament import Tournament  # noqa: F401
    from tourney.models.veto_session import VetoAction, VetoSession  # noqa: F401

    SQLModel.metadata.create_all(test_engine)

    with Session(test_engine) as session:
        yield session

    SQLModel.metadata.drop_all(test_engine)


@pytest.fixture(name="client")
def client_fixture(session: Session):
    """Provide a test client with overridden database session

    Override MUST be set BEFORE TestClient() and stay in place
    for the entire duration. This ensures the app never uses its own engine.
    """
    app.dependency_overrides[get_session] = override_get_session

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture(name="teams")
def teams_fixture(session: Session):
    """Four registered teams with two-player rosters, in seed order."""
    rows = []
    names = [("navi", "Natus Vincere"), ("faze", "FaZe Clan"), ("g2", "G2 Esports"), ("vitality", "Vitality")]
    for slug, name in names:
        team = Team(
            id=slug,
            name=name,
            players=[
                {"steamId": f"7656119800000{len(rows)}1", "name": f"{slug}_one"},
                {"steamId": f"7656119800000{len(rows)}2", "name": f"{slug}_two"},
            ],
        )
        session.add(team)
        rows.append(team)
    session.commit()
    for team in rows:
        session.refresh(team)
    return rows


CS2_MAPS = ["de_ancient", "de_anubis", "de_dust2", "de_inferno", "de_mirage", "de_nuke", "de_train"]


@pytest.fixture(name="maps")
def maps_fixture():
    return list(CS2_MAPS)


@pytest.fixture(name="finish_veto")
def finish_veto_fixture(session: Session):
    """Play out a match's veto: each step takes the first available map, side picks take CT."""
    from tourney.services import veto_engine, veto_service

    def _finish(slug: str):
        match, veto = veto_service.load_veto(session, slug)
        while True:
            state = veto_engine.get_state(veto)
            step = state.current_step
            if step is None:
                return match
            team_slug = veto.team1_id if step.team == "team1" else veto.team2_id
            if step.action == "side_pick":
                match, veto = veto_service.submit_action(session, slug, team_slug, side="CT")
            else:
                match, veto = veto_service.submit_action(session, slug, team_slug, map_name=state.available_maps[0])

    return _finish

"""Per-slug critical sections and the atomic save boundary."""
import threading
import time

import pytest
from sqlmodel import Session, SQLModel, create_engine

from tourney.models.match import MATCH_PENDING
from tourney.models.team import Team
from tourney.models.tournament import Tournament
from tourney.models.veto_session import VetoAction
from tourney.services import bracket_scheduler, tournament_service, veto_engine, veto_service
from tourney.services.bracket_scheduler import match_slug
from tourney.services.errors import MatchEngineError, MatchNotFound, MatchNotReady, NotYourTurn
from tourney.services.match_registry import MatchRegistry


def test_same_slug_is_mutually_exclusive():
    registry = MatchRegistry()
    state = {"inside": 0, "max_inside": 0}
    counter_lock = threading.Lock()

    def worker():
        with registry.locked("t1-r1m1"):
            with counter_lock:
                state["inside"] += 1
                state["max_inside"] = max(state["max_inside"], state["inside"])
            time.sleep(0.005)
            with counter_lock:
                state["inside"] -= 1

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=5)

    assert state["max_inside"] == 1
    assert registry.active_slugs() == []


def test_different_slugs_do_not_contend():
    registry = MatchRegistry()
    done = threading.Event()

    def other_match():
        with registry.locked("t1-r1m2"):
            done.set()

    with registry.locked("t1-r1m1"):
        thread = threading.Thread(target=other_match)
        thread.start()
        assert done.wait(timeout=2)
        assert registry.active_slugs() == ["t1-r1m1"]
    thread.join(timeout=2)


def test_lock_released_on_error():
    registry = MatchRegistry()
    with pytest.raises(RuntimeError):
        with registry.locked("t1-r1m1"):
            raise RuntimeError("boom")
    assert registry.active_slugs() == []
    # Reacquire without blocking
    assert registry.with_lock("t1-r1m1", lambda x: x * 2, 21) == 42


def test_get_unknown_slug(session: Session):
    with pytest.raises(MatchNotFound):
        MatchRegistry().get(session, "t99-r1m1")


def test_duplicate_step_rolls_back_as_not_your_turn(session: Session, teams, maps):
    """A second writer for an already-consumed step loses at the unique constraint"""
    tournament = tournament_service.create_tournament(
        session,
        name="Race Cup",
        tournament_type="single_elimination",
        format_id="bo1",
        maps=maps,
        team_ids=["navi", "faze"],
    )
    bracket_scheduler.start(session, tournament.id)
    slug = match_slug(tournament.id, 1, 1)
    veto_service.submit_action(session, slug, "navi", map_name=maps[0])

    registry = MatchRegistry()
    match, veto = veto_service.load_veto(session, slug, registry)
    veto.actions.append(
        VetoAction(step_index=0, team="team1", team_slug="navi", action="ban", map_name=maps[1])
    )
    with pytest.raises(NotYourTurn):
        registry.save(session, match, veto)

    match, veto = veto_service.load_veto(session, slug, registry)
    state = veto_engine.get_state(veto)
    assert len(state.actions) == 1
    assert state.banned_maps == [maps[0]]


# ============================================================================
# Concurrent requests on a file-backed database
# ============================================================================


@pytest.fixture(name="file_engine")
def file_engine_fixture(tmp_path):
    """On-disk SQLite so every thread gets its own connection and Session"""
    engine = create_engine(f"sqlite:///{tmp_path / 'race.db'}", connect_args={"check_same_thread": False})
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        for slug in ("navi", "faze"):
            session.add(Team(id=slug, name=slug.upper()))
        session.commit()
    yield engine
    engine.dispose()


def _started_tournament(engine, maps) -> int:
    with Session(engine) as session:
        tournament = tournament_service.create_tournament(
            session,
            name="Race Cup",
            tournament_type="single_elimination",
            format_id="bo1",
            maps=maps,
            team_ids=["navi", "faze"],
        )
        bracket_scheduler.start(session, tournament.id)
        return tournament.id


def test_concurrent_actions_on_one_match_apply_once(file_engine, maps):
    tournament_id = _started_tournament(file_engine, maps)
    slug = match_slug(tournament_id, 1, 1)
    registry = MatchRegistry()
    workers = 8
    barrier = threading.Barrier(workers)
    outcomes = []
    outcomes_lock = threading.Lock()

    def submit(map_name):
        with Session(file_engine) as session:
            barrier.wait(timeout=5)
            try:
                veto_service.submit_action(session, slug, "navi", map_name=map_name, registry=registry)
                outcome = "ok"
            except MatchEngineError as e:
                outcome = e.code
        with outcomes_lock:
            outcomes.append(outcome)

    threads = [threading.Thread(target=submit, args=(maps[i % len(maps)],)) for i in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10)

    assert sorted(outcomes) == ["NOT_YOUR_TURN"] * (workers - 1) + ["ok"]
    with Session(file_engine) as session:
        _, veto = veto_service.load_veto(session, slug, registry)
        assert len(veto_engine.get_state(veto).actions) == 1
    assert registry.active_slugs() == []


def test_reset_waits_for_in_flight_match_action(file_engine, maps):
    tournament_id = _started_tournament(file_engine, maps)
    slug = match_slug(tournament_id, 1, 1)
    registry = MatchRegistry()
    finished = threading.Event()

    def reset():
        with Session(file_engine) as session:
            tournament = session.get(Tournament, tournament_id)
            tournament_service.reset_tournament(session, tournament, registry=registry)
        finished.set()

    with registry.locked(slug):
        thread = threading.Thread(target=reset)
        thread.start()
        assert not finished.wait(timeout=0.3)
    thread.join(timeout=10)
    assert finished.is_set()

    with Session(file_engine) as session:
        match = registry.get(session, slug)
        assert match.status == MATCH_PENDING
        assert registry.get_veto(session, match) is None
        with pytest.raises(MatchNotReady):
            veto_service.submit_action(session, slug, "navi", map_name=maps[0], registry=registry)

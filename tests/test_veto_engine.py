"""
Veto engine: action validation order, log-as-state fold and the full
ban/pick/side-pick runs of each built-in format.

Sessions here are transient (never added to a DB session); the fold only
reads the step table, the pool and the action log.
"""
import pytest

from tourney.models.match import Match
from tourney.models.veto_session import VETO_COMPLETED, VETO_IN_PROGRESS, VETO_PENDING
from tourney.services import veto_engine
from tourney.services.errors import (
    FormatNotFound,
    InvalidMap,
    InvalidSide,
    MatchNotReady,
    NotYourTurn,
    PoolSizeMismatch,
    VetoAlreadyCompleted,
)
from tourney.services.veto_engine import PICKED_BY_DECIDER, replay
from tourney.services.veto_formats import get_format

MAJOR_POOL = ["mirage", "inferno", "ancient", "anubis", "dust2", "vertigo", "nuke"]


def _match(team1="navi", team2="faze"):
    return Match(
        id=1,
        slug="t1-r1m1",
        tournament_id=1,
        round_number=1,
        match_number=1,
        team1_id=team1,
        team2_id=team2,
    )


def _session(format_id, pool=None, match=None):
    return veto_engine.create_session(match or _match(), format_id, pool or list(MAJOR_POOL))


def _action_log_snapshot(veto):
    return [(a.step_index, a.team_slug, a.action, a.map_name, a.side) for a in veto.actions]


def test_cs_major_scenario():
    """team1 bans mirage, inferno; team2 bans ancient, anubis, dust2; team1 bans vertigo; team2 takes CT"""
    veto = _session("bo1-cs-major")
    veto_engine.apply_action(veto, "navi", map_name="mirage")
    veto_engine.apply_action(veto, "navi", map_name="inferno")
    veto_engine.apply_action(veto, "faze", map_name="ancient")
    veto_engine.apply_action(veto, "faze", map_name="anubis")
    veto_engine.apply_action(veto, "faze", map_name="dust2")
    veto_engine.apply_action(veto, "navi", map_name="vertigo")
    assert veto.status == VETO_IN_PROGRESS

    veto_engine.apply_action(veto, "faze", side="CT")

    assert veto.status == VETO_COMPLETED
    assert veto.completed_at is not None
    state = veto_engine.get_state(veto)
    assert len(state.picked_maps) == 1
    nuke = state.picked_maps[0]
    assert nuke.map_name == "nuke"
    assert nuke.order == 0
    assert nuke.side_team2 == "CT"
    assert nuke.side_team1 == "T"
    assert nuke.picked_by == PICKED_BY_DECIDER
    assert state.available_maps == []
    assert state.banned_maps == ["mirage", "inferno", "ancient", "anubis", "dust2", "vertigo"]


def test_wrong_team_is_rejected_without_change():
    veto = _session("bo1-cs-major")
    veto_engine.apply_action(veto, "navi", map_name="mirage")
    before = _action_log_snapshot(veto)

    # Step 2 still belongs to team1
    with pytest.raises(NotYourTurn):
        veto_engine.apply_action(veto, "faze", map_name="inferno")

    assert _action_log_snapshot(veto) == before
    assert veto.status == VETO_IN_PROGRESS
    assert "inferno" in veto_engine.get_state(veto).available_maps


def test_unknown_team_slug_is_not_your_turn():
    veto = _session("bo1")
    with pytest.raises(NotYourTurn):
        veto_engine.apply_action(veto, "g2", map_name="mirage")
    assert len(veto.actions) == 0


def test_banned_map_is_rejected_without_change():
    veto = _session("bo1")
    veto_engine.apply_action(veto, "navi", map_name="mirage")
    before_state = veto_engine.get_state(veto)

    with pytest.raises(InvalidMap):
        veto_engine.apply_action(veto, "faze", map_name="mirage")

    after_state = veto_engine.get_state(veto)
    assert len(veto.actions) == 1
    assert after_state.available_maps == before_state.available_maps
    assert after_state.banned_maps == ["mirage"]


def test_map_outside_pool_is_invalid():
    veto = _session("bo1")
    with pytest.raises(InvalidMap):
        veto_engine.apply_action(veto, "navi", map_name="de_cache")


def test_missing_map_on_ban_step_is_invalid():
    veto = _session("bo1")
    with pytest.raises(InvalidMap):
        veto_engine.apply_action(veto, "navi", side="CT")


def test_invalid_side():
    veto = _session("bo3")
    veto_engine.apply_action(veto, "navi", map_name="mirage")
    veto_engine.apply_action(veto, "faze", map_name="inferno")
    veto_engine.apply_action(veto, "navi", map_name="ancient")
    with pytest.raises(InvalidSide):
        veto_engine.apply_action(veto, "faze", side="spectator")
    assert len(veto.actions) == 3


def test_action_after_completion():
    veto = _session("bo1")
    for team, map_name in zip(["navi", "faze"] * 3, MAJOR_POOL[:6]):
        veto_engine.apply_action(veto, team, map_name=map_name)
    veto_engine.apply_action(veto, "navi", side="T")
    assert veto.status == VETO_COMPLETED

    with pytest.raises(VetoAlreadyCompleted):
        veto_engine.apply_action(veto, "navi", side="CT")
    assert len(veto.actions) == 7


def test_completed_check_runs_before_turn_check():
    veto = _session("bo1")
    for team, map_name in zip(["navi", "faze"] * 3, MAJOR_POOL[:6]):
        veto_engine.apply_action(veto, team, map_name=map_name)
    veto_engine.apply_action(veto, "navi", side="T")

    with pytest.raises(VetoAlreadyCompleted):
        veto_engine.apply_action(veto, "someone-else", map_name="nuke")


def test_pending_session_rejects_actions():
    veto = veto_engine.create_session(_match(team2=None), "bo1", list(MAJOR_POOL))
    assert veto.status == VETO_PENDING
    with pytest.raises(MatchNotReady):
        veto_engine.apply_action(veto, "navi", map_name="mirage")


def test_bo3_full_run():
    veto = _session("bo3")
    veto_engine.apply_action(veto, "navi", map_name="vertigo")  # ban
    veto_engine.apply_action(veto, "faze", map_name="anubis")  # ban
    veto_engine.apply_action(veto, "navi", map_name="mirage")  # pick
    veto_engine.apply_action(veto, "faze", side="CT")  # side on mirage
    veto_engine.apply_action(veto, "faze", map_name="inferno")  # pick
    veto_engine.apply_action(veto, "navi", side="T")  # side on inferno
    veto_engine.apply_action(veto, "faze", map_name="dust2")  # ban
    veto_engine.apply_action(veto, "navi", map_name="ancient")  # ban
    veto_engine.apply_action(veto, "faze", side="T")  # decider side

    assert veto.status == VETO_COMPLETED
    state = veto_engine.get_state(veto)
    assert [p.map_name for p in state.picked_maps] == ["mirage", "inferno", "nuke"]
    assert [p.picked_by for p in state.picked_maps] == ["team1", "team2", PICKED_BY_DECIDER]
    assert [p.side_team1 for p in state.picked_maps] == ["T", "T", "CT"]
    assert [p.side_team2 for p in state.picked_maps] == ["CT", "CT", "T"]
    assert state.available_maps == []


def test_bo5_full_run():
    veto = _session("bo5")
    veto_engine.apply_action(veto, "navi", map_name="vertigo")
    veto_engine.apply_action(veto, "faze", map_name="anubis")
    veto_engine.apply_action(veto, "navi", map_name="mirage")
    veto_engine.apply_action(veto, "faze", side="CT")
    veto_engine.apply_action(veto, "faze", map_name="inferno")
    veto_engine.apply_action(veto, "navi", side="CT")
    veto_engine.apply_action(veto, "navi", map_name="nuke")
    veto_engine.apply_action(veto, "faze", side="T")
    veto_engine.apply_action(veto, "faze", map_name="dust2")
    veto_engine.apply_action(veto, "navi", side="T")
    veto_engine.apply_action(veto, "navi", side="CT")

    assert veto.status == VETO_COMPLETED
    state = veto_engine.get_state(veto)
    assert [p.map_name for p in state.picked_maps] == ["mirage", "inferno", "nuke", "dust2", "ancient"]
    assert [p.order for p in state.picked_maps] == [0, 1, 2, 3, 4]
    for picked in state.picked_maps:
        assert {picked.side_team1, picked.side_team2} == {"T", "CT"}
    assert state.picked_maps[-1].side_team1 == "CT"


def test_pick_is_recorded_before_its_side():
    veto = _session("bo3")
    veto_engine.apply_action(veto, "navi", map_name="vertigo")
    veto_engine.apply_action(veto, "faze", map_name="anubis")
    veto_engine.apply_action(veto, "navi", map_name="mirage")

    state = veto_engine.get_state(veto)
    assert state.picked_maps[0].map_name == "mirage"
    assert state.picked_maps[0].side_team1 is None
    assert state.current_step.action == "side_pick"
    assert state.current_step.team == "team2"


@pytest.mark.parametrize("format_id", ["bo1", "bo1-cs-major", "bo3", "bo5"])
def test_available_maps_after_all_removals(format_id):
    """After every ban/pick, exactly finalMapCount maps remain undecided by removal"""
    fmt = get_format(format_id)
    veto = _session(format_id)
    teams = {"team1": "navi", "team2": "faze"}
    for step in fmt.steps:
        state = veto_engine.get_state(veto)
        if step.action == "side_pick":
            veto_engine.apply_action(veto, teams[step.team], side="CT")
        else:
            veto_engine.apply_action(veto, teams[step.team], map_name=state.available_maps[0])

    state = veto_engine.get_state(veto)
    assert state.status == VETO_COMPLETED
    assert len(state.banned_maps) == fmt.pool_size - fmt.final_map_count
    assert len(state.picked_maps) == fmt.final_map_count
    assert state.available_maps == []


def test_replay_is_deterministic():
    veto = _session("bo3")
    veto_engine.apply_action(veto, "navi", map_name="vertigo")
    veto_engine.apply_action(veto, "faze", map_name="anubis")
    veto_engine.apply_action(veto, "navi", map_name="mirage")
    veto_engine.apply_action(veto, "faze", side="T")

    log = veto_engine._log_of(veto)
    fmt = get_format("bo3")
    first = replay(fmt, MAJOR_POOL, log)
    second = replay(fmt, MAJOR_POOL, log)
    assert first.available_maps == second.available_maps
    assert first.picked_maps == second.picked_maps
    assert first.available_maps == veto_engine.get_state(veto).available_maps


def test_replay_rejects_gaps_in_the_log():
    veto = _session("bo1")
    veto_engine.apply_action(veto, "navi", map_name="mirage")
    veto_engine.apply_action(veto, "faze", map_name="inferno")
    log = veto_engine._log_of(veto)[1:]
    with pytest.raises(ValueError):
        replay(get_format("bo1"), MAJOR_POOL, log)


def test_create_session_unknown_format():
    with pytest.raises(FormatNotFound):
        _session("bo7")


def test_create_session_pool_size_mismatch():
    with pytest.raises(PoolSizeMismatch):
        _session("bo1", pool=MAJOR_POOL[:6])


def test_create_session_duplicate_maps():
    with pytest.raises(PoolSizeMismatch):
        _session("bo1", pool=MAJOR_POOL[:6] + ["mirage"])


def test_session_snapshots_steps_and_teams():
    veto = _session("bo1-cs-major")
    assert veto.steps[0] == {"team": "team1", "action": "ban"}
    assert veto.steps[-1] == {"team": "team2", "action": "side_pick"}
    assert veto.team1_id == "navi"
    assert veto.team2_id == "faze"
    assert veto.map_pool == MAJOR_POOL

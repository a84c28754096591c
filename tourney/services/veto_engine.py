"""
Veto Engine: per-match ban/pick/side-pick state machine.

State is never stored as flags. The only durable facts are:
  - the step table (format, snapshotted on the session)
  - the original map pool
  - the append-only action log (one VetoAction per executed step)

Everything else (available maps, banned maps, picked maps with sides, whose
turn it is) is a pure fold over the log via replay(). Validation in
plan_action() runs against that fold before anything is appended, so a
rejected action never changes the session.
"""

import copy
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List, Optional, Sequence

from tourney.models.match import Match
from tourney.models.veto_session import VETO_COMPLETED, VETO_IN_PROGRESS, VETO_PENDING, VetoAction, VetoSession
from tourney.services.errors import (
    InvalidMap,
    InvalidSide,
    InvalidVetoOrder,
    MatchNotReady,
    NotYourTurn,
    PoolSizeMismatch,
    VetoAlreadyCompleted,
)
from tourney.services.veto_formats import (
    BAN,
    PICK,
    SIDE_PICK,
    SIDES,
    TEAM1,
    VetoFormat,
    VetoStep,
    other_side,
    parse_steps,
    resolve_format,
)

logger = logging.getLogger(__name__)

PICKED_BY_DECIDER = "decider"


@dataclass
class PickedMap:
    map_name: str
    order: int  # 0-based play order
    picked_by: str  # "team1" | "team2" | "decider"
    side_team1: Optional[str] = None
    side_team2: Optional[str] = None


@dataclass(frozen=True)
class LoggedAction:
    step_index: int
    team: str
    team_slug: str
    action: str
    map_name: Optional[str] = None
    side: Optional[str] = None
    timestamp: Optional[datetime] = None


@dataclass
class VetoState:
    """Read-only projection of a veto session at some point of its log."""

    format_id: str
    status: str
    steps: List[VetoStep]
    all_maps: List[str]
    available_maps: List[str]
    banned_maps: List[str] = field(default_factory=list)
    picked_maps: List[PickedMap] = field(default_factory=list)
    actions: List[LoggedAction] = field(default_factory=list)

    @property
    def next_step_index(self) -> int:
        return len(self.actions)

    @property
    def total_steps(self) -> int:
        return len(self.steps)

    @property
    def current_step(self) -> Optional[VetoStep]:
        if self.status == VETO_COMPLETED or self.next_step_index >= len(self.steps):
            return None
        return self.steps[self.next_step_index]


# ---------------------------------------------------------------------------
# Fold
# ---------------------------------------------------------------------------


def _unsided(state: VetoState) -> Optional[PickedMap]:
    for picked in state.picked_maps:
        if picked.side_team1 is None:
            return picked
    return None


def _promote_deciders(state: VetoState) -> None:
    # available_maps is kept in pool order, so promotion is stable
    for map_name in state.available_maps:
        state.picked_maps.append(
            PickedMap(map_name=map_name, order=len(state.picked_maps), picked_by=PICKED_BY_DECIDER)
        )
    state.available_maps = []


def side_pick_target(state: VetoState, fmt: VetoFormat, step_index: int) -> Optional[str]:
    """Name of the map a side-pick at step_index applies to, without mutating state."""
    picked = _unsided(state)
    if picked is not None:
        return picked.map_name
    if not fmt.has_map_step_after(step_index) and state.available_maps:
        return state.available_maps[0]
    return None


def _apply(state: VetoState, fmt: VetoFormat, entry: LoggedAction) -> None:
    if entry.action == BAN:
        state.available_maps.remove(entry.map_name)
        state.banned_maps.append(entry.map_name)
    elif entry.action == PICK:
        state.available_maps.remove(entry.map_name)
        state.picked_maps.append(
            PickedMap(map_name=entry.map_name, order=len(state.picked_maps), picked_by=entry.team)
        )
    elif entry.action == SIDE_PICK:
        target = _unsided(state)
        if target is None and not fmt.has_map_step_after(entry.step_index):
            _promote_deciders(state)
            target = _unsided(state)
        if target is None:
            raise InvalidVetoOrder(f"Side pick at step {entry.step_index + 1} has no map to apply to")
        if entry.team == TEAM1:
            target.side_team1 = entry.side
            target.side_team2 = other_side(entry.side)
        else:
            target.side_team2 = entry.side
            target.side_team1 = other_side(entry.side)
    state.actions.append(entry)


def replay(
    fmt: VetoFormat, map_pool: Sequence[str], actions: Sequence[LoggedAction], status: Optional[str] = None
) -> VetoState:
    """
    Fold an action log over the original pool.

    Deterministic: the same (format, pool, log) always yields the same state,
    which is what makes the log alone sufficient for crash recovery.
    """
    state = VetoState(
        format_id=fmt.id,
        status=status or VETO_IN_PROGRESS,
        steps=list(fmt.steps),
        all_maps=list(map_pool),
        available_maps=list(map_pool),
    )
    for expected_index, entry in enumerate(actions):
        if entry.step_index != expected_index:
            raise ValueError(f"Action log out of order: expected step {expected_index}, got {entry.step_index}")
        _apply(state, fmt, entry)

    if len(state.actions) >= len(fmt.steps):
        _promote_deciders(state)
        state.status = VETO_COMPLETED
    elif state.status == VETO_COMPLETED:
        state.status = VETO_IN_PROGRESS
    return state


def plan_action(
    fmt: VetoFormat,
    state: VetoState,
    team1_id: str,
    team2_id: str,
    team_slug: str,
    map_name: Optional[str] = None,
    side: Optional[str] = None,
) -> LoggedAction:
    """
    Validate one submitted action against the folded state and return the
    log entry that would record it. Checks run in a fixed order:
    completion, turn, then map or side.
    """
    if state.status == VETO_COMPLETED:
        raise VetoAlreadyCompleted("Veto already completed")
    if state.status == VETO_PENDING:
        raise MatchNotReady("Veto has not opened yet; both teams must be assigned")

    step_index = state.next_step_index
    step = fmt.steps[step_index]
    expected_slug = team1_id if step.team == TEAM1 else team2_id
    if team_slug != expected_slug:
        raise NotYourTurn(f"It's not your turn. Step {step_index + 1} belongs to {step.team}")

    if step.action in (BAN, PICK):
        if not map_name or map_name not in state.available_maps:
            raise InvalidMap(f"Map '{map_name}' is not available")
        return LoggedAction(
            step_index=step_index,
            team=step.team,
            team_slug=team_slug,
            action=step.action,
            map_name=map_name,
            timestamp=datetime.utcnow(),
        )

    if side not in SIDES:
        raise InvalidSide(f"Invalid side selection {side!r}; must be 'T' or 'CT'")
    target = side_pick_target(state, fmt, step_index)
    if target is None:
        raise InvalidVetoOrder(f"Side pick at step {step_index + 1} has no map to apply to")
    return LoggedAction(
        step_index=step_index,
        team=step.team,
        team_slug=team_slug,
        action=SIDE_PICK,
        map_name=target,
        side=side,
        timestamp=datetime.utcnow(),
    )


def validate_format(fmt: VetoFormat) -> None:
    """
    Check a step table by replaying it over a synthetic pool.

    A valid table completes with one side-pick per final map, every picked
    map holding complementary sides.
    """
    if not fmt.steps:
        raise InvalidVetoOrder("Veto order cannot be empty")
    if fmt.ban_count + fmt.pick_count >= fmt.pool_size:
        raise InvalidVetoOrder(
            f"{fmt.ban_count} bans and {fmt.pick_count} picks leave no decider in a pool of {fmt.pool_size}"
        )
    if fmt.side_pick_count != fmt.final_map_count:
        raise InvalidVetoOrder(
            f"Expected {fmt.final_map_count} side picks (one per map played), got {fmt.side_pick_count}"
        )

    pool = [f"map{i}" for i in range(fmt.pool_size)]
    state = replay(fmt, pool, [])
    for index, step in enumerate(fmt.steps):
        if step.action in (BAN, PICK):
            if not state.available_maps:
                raise InvalidVetoOrder(f"Step {index + 1} ({step.action}) runs out of maps")
            entry = LoggedAction(index, step.team, step.team, step.action, map_name=state.available_maps[0])
        else:
            entry = LoggedAction(index, step.team, step.team, step.action, side=SIDES[0])
        _apply(state, fmt, entry)
    _promote_deciders(state)

    if len(state.picked_maps) != fmt.final_map_count:
        raise InvalidVetoOrder(f"Veto plays {len(state.picked_maps)} maps, expected {fmt.final_map_count}")
    for picked in state.picked_maps:
        if picked.side_team1 is None:
            raise InvalidVetoOrder(f"Map {picked.order + 1} never gets a starting side")


def resolve_validated_format(format_id: str, custom_steps: Optional[Sequence[Any]] = None) -> VetoFormat:
    fmt = resolve_format(format_id, custom_steps)
    if custom_steps:
        validate_format(fmt)
    return fmt


# ---------------------------------------------------------------------------
# Session operations
# ---------------------------------------------------------------------------


def _session_format(veto: VetoSession) -> VetoFormat:
    return VetoFormat(
        id=veto.format_id,
        name=veto.format_id,
        steps=parse_steps(veto.steps),
        pool_size=len(veto.map_pool),
    )


def _log_of(veto: VetoSession) -> List[LoggedAction]:
    return [
        LoggedAction(
            step_index=a.step_index,
            team=a.team,
            team_slug=a.team_slug,
            action=a.action,
            map_name=a.map_name,
            side=a.side,
            timestamp=a.created_at,
        )
        for a in sorted(veto.actions, key=lambda a: a.step_index)
    ]


def create_session(
    match: Match,
    format_id: str,
    map_pool: Sequence[str],
    custom_steps: Optional[Sequence[Any]] = None,
) -> VetoSession:
    """
    Create (unsaved) the veto session for a match.

    Raises:
        FormatNotFound: format_id is not registered
        PoolSizeMismatch: len(map_pool) differs from the format's pool size
    """
    fmt = resolve_format(format_id, custom_steps)
    if len(map_pool) != fmt.pool_size:
        raise PoolSizeMismatch(
            f"Format '{format_id}' needs a pool of {fmt.pool_size} maps, got {len(map_pool)}"
        )
    if len(set(map_pool)) != len(map_pool):
        raise PoolSizeMismatch("Map pool contains duplicate maps")

    status = VETO_IN_PROGRESS if match.has_both_teams() else VETO_PENDING
    return VetoSession(
        match_id=match.id,
        format_id=fmt.id,
        map_pool=list(map_pool),
        steps=fmt.steps_as_dicts(),
        team1_id=match.team1_id,
        team2_id=match.team2_id,
        status=status,
    )


def get_state(veto: VetoSession) -> VetoState:
    """Read-only projection; never mutates the session."""
    return replay(_session_format(veto), veto.map_pool, _log_of(veto), status=veto.status)


def apply_action(
    veto: VetoSession,
    team_slug: str,
    map_name: Optional[str] = None,
    side: Optional[str] = None,
) -> VetoSession:
    """
    Validate and append one action to the session's log.

    The caller persists the session (new VetoAction row + status change) in a
    single transaction while holding the match lock.
    """
    fmt = _session_format(veto)
    state = get_state(veto)
    entry = plan_action(fmt, state, veto.team1_id, veto.team2_id, team_slug, map_name=map_name, side=side)

    # Check the fold accepts the new entry before touching the ORM object
    after = copy.deepcopy(state)
    _apply(after, fmt, entry)

    veto.actions.append(
        VetoAction(
            step_index=entry.step_index,
            team=entry.team,
            team_slug=entry.team_slug,
            action=entry.action,
            map_name=entry.map_name,
            side=entry.side,
            created_at=entry.timestamp,
        )
    )
    logger.debug(
        "Veto action accepted: session=%s step=%d %s %s %s",
        veto.id,
        entry.step_index + 1,
        entry.team,
        entry.action,
        entry.side or entry.map_name,
    )

    if entry.step_index + 1 >= fmt.total_steps:
        veto.status = VETO_COMPLETED
        veto.completed_at = datetime.utcnow()
        final = get_state(veto)
        logger.info(
            "Veto completed for match %s: %s", veto.match_id, [p.map_name for p in final.picked_maps]
        )
    return veto


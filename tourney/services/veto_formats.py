"""
Veto format registry.

Each format is a static, ordered step table (actor, action) consulted by the
generic fold in veto_engine.py. Adding a format is a data change only.

Standard tables follow the CS Major Supplemental Rulebook:

  bo1-cs-major: A bans 2, B bans 3, A bans 1, B picks starting side
  bo3:          A ban, B ban, A pick (B side), B pick (A side),
                B ban, A ban, decider (B side)
  bo5:          A ban, B ban, then A/B alternate four picks with the
                opponent choosing side, decider (A side)
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from tourney.services.errors import FormatNotFound, InvalidVetoOrder

TEAM1 = "team1"
TEAM2 = "team2"
TEAMS = (TEAM1, TEAM2)

BAN = "ban"
PICK = "pick"
SIDE_PICK = "side_pick"
ACTIONS = (BAN, PICK, SIDE_PICK)
MAP_ACTIONS = (BAN, PICK)

SIDE_T = "T"
SIDE_CT = "CT"
SIDES = (SIDE_T, SIDE_CT)


def other_side(side: str) -> str:
    return SIDE_T if side == SIDE_CT else SIDE_CT


@dataclass(frozen=True)
class VetoStep:
    team: str  # "team1" | "team2"
    action: str  # "ban" | "pick" | "side_pick"

    def to_dict(self) -> Dict[str, str]:
        return {"team": self.team, "action": self.action}


@dataclass(frozen=True)
class VetoFormat:
    id: str
    name: str
    steps: Tuple[VetoStep, ...]
    pool_size: int

    @property
    def ban_count(self) -> int:
        return sum(1 for s in self.steps if s.action == BAN)

    @property
    def pick_count(self) -> int:
        return sum(1 for s in self.steps if s.action == PICK)

    @property
    def side_pick_count(self) -> int:
        return sum(1 for s in self.steps if s.action == SIDE_PICK)

    @property
    def final_map_count(self) -> int:
        """Maps left undecided-by-removal once every ban has executed."""
        return self.pool_size - self.ban_count

    @property
    def total_steps(self) -> int:
        return len(self.steps)

    def has_map_step_after(self, step_index: int) -> bool:
        return any(s.action in MAP_ACTIONS for s in self.steps[step_index + 1 :])

    def steps_as_dicts(self) -> List[Dict[str, str]]:
        return [s.to_dict() for s in self.steps]


def _steps(*pairs: Tuple[str, str]) -> Tuple[VetoStep, ...]:
    return tuple(VetoStep(team=team, action=action) for team, action in pairs)


BO1_STEPS = _steps(
    (TEAM1, BAN),
    (TEAM2, BAN),
    (TEAM1, BAN),
    (TEAM2, BAN),
    (TEAM1, BAN),
    (TEAM2, BAN),
    (TEAM1, SIDE_PICK),
)

BO1_CS_MAJOR_STEPS = _steps(
    (TEAM1, BAN),
    (TEAM1, BAN),
    (TEAM2, BAN),
    (TEAM2, BAN),
    (TEAM2, BAN),
    (TEAM1, BAN),
    (TEAM2, SIDE_PICK),
)

BO3_STEPS = _steps(
    (TEAM1, BAN),
    (TEAM2, BAN),
    (TEAM1, PICK),
    (TEAM2, SIDE_PICK),
    (TEAM2, PICK),
    (TEAM1, SIDE_PICK),
    (TEAM2, BAN),
    (TEAM1, BAN),
    (TEAM2, SIDE_PICK),  # decider
)

BO5_STEPS = _steps(
    (TEAM1, BAN),
    (TEAM2, BAN),
    (TEAM1, PICK),
    (TEAM2, SIDE_PICK),
    (TEAM2, PICK),
    (TEAM1, SIDE_PICK),
    (TEAM1, PICK),
    (TEAM2, SIDE_PICK),
    (TEAM2, PICK),
    (TEAM1, SIDE_PICK),
    (TEAM1, SIDE_PICK),  # decider
)

STANDARD_POOL_SIZE = 7

FORMATS: Dict[str, VetoFormat] = {
    f.id: f
    for f in (
        VetoFormat(id="bo1", name="Best of 1", steps=BO1_STEPS, pool_size=STANDARD_POOL_SIZE),
        VetoFormat(
            id="bo1-cs-major", name="Best of 1 (CS Major)", steps=BO1_CS_MAJOR_STEPS, pool_size=STANDARD_POOL_SIZE
        ),
        VetoFormat(id="bo3", name="Best of 3", steps=BO3_STEPS, pool_size=STANDARD_POOL_SIZE),
        VetoFormat(id="bo5", name="Best of 5", steps=BO5_STEPS, pool_size=STANDARD_POOL_SIZE),
    )
}


def get_format(format_id: str) -> VetoFormat:
    """Look up a registered format, raising FormatNotFound for unknown ids."""
    fmt = FORMATS.get(format_id)
    if fmt is None:
        raise FormatNotFound(f"Unknown veto format '{format_id}'. Known formats: {', '.join(sorted(FORMATS))}")
    return fmt


def list_formats() -> List[VetoFormat]:
    return list(FORMATS.values())


def parse_steps(raw_steps: Iterable[Any]) -> Tuple[VetoStep, ...]:
    """
    Convert a JSON step table ([{"team": ..., "action": ...}]) into VetoSteps.

    Raises InvalidVetoOrder on unknown teams/actions or malformed entries.
    """
    steps: List[VetoStep] = []
    for position, raw in enumerate(raw_steps, start=1):
        if isinstance(raw, VetoStep):
            step = raw
        elif isinstance(raw, dict):
            step = VetoStep(team=raw.get("team"), action=raw.get("action"))
        else:
            raise InvalidVetoOrder(f"Step {position} must be an object with 'team' and 'action'")
        if step.team not in TEAMS:
            raise InvalidVetoOrder(f"Invalid team in step {position}: {step.team!r}. Must be 'team1' or 'team2'")
        if step.action not in ACTIONS:
            raise InvalidVetoOrder(
                f"Invalid action in step {position}: {step.action!r}. Must be 'ban', 'pick', or 'side_pick'"
            )
        steps.append(step)
    if not steps:
        raise InvalidVetoOrder("Veto order cannot be empty")
    return tuple(steps)


def build_custom_format(format_id: str, raw_steps: Sequence[Any]) -> VetoFormat:
    """
    Build a tournament-specific variant of a registered format.

    The variant keeps the base format's id and implies a pool of
    bans + picks + 1 maps (the last remaining map is the decider).
    """
    base = get_format(format_id)
    steps = parse_steps(raw_steps)
    bans = sum(1 for s in steps if s.action == BAN)
    picks = sum(1 for s in steps if s.action == PICK)
    return VetoFormat(id=base.id, name=f"{base.name} (custom)", steps=steps, pool_size=bans + picks + 1)


def resolve_format(format_id: str, custom_steps: Optional[Sequence[Any]] = None) -> VetoFormat:
    if custom_steps:
        return build_custom_format(format_id, custom_steps)
    return get_format(format_id)

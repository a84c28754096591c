"""
Tournament lifecycle: creation, lookup of the active tournament, bracket view
and reset.
"""
import logging
from typing import Any, Dict, List, Optional, Sequence

from sqlmodel import Session, select

from tourney.models.match import Match
from tourney.models.team import Team
from tourney.models.tournament import TOURNAMENT_SETUP, Tournament
from tourney.services import bracket_scheduler, veto_engine
from tourney.services.errors import (
    InsufficientTeams,
    InvalidVetoOrder,
    PoolSizeMismatch,
    TournamentNotFound,
    UnknownTeam,
    UnsupportedTournamentType,
)
from tourney.services.match_registry import MatchRegistry, registry as default_registry

logger = logging.getLogger(__name__)

SINGLE_ELIMINATION = "single_elimination"
TOURNAMENT_TYPES = (SINGLE_ELIMINATION,)


def _check_teams(session: Session, team_ids: Sequence[str]) -> None:
    if len(team_ids) < 2:
        raise InsufficientTeams(f"At least 2 teams are required, got {len(team_ids)}")
    seen = set()
    for team_id in team_ids:
        if team_id in seen:
            raise UnknownTeam(f"Team '{team_id}' is listed more than once")
        seen.add(team_id)
    known = set(session.exec(select(Team.id).where(Team.id.in_(list(team_ids)))).all())
    missing = [t for t in team_ids if t not in known]
    if missing:
        raise UnknownTeam(f"Unknown team(s): {', '.join(missing)}")


def create_tournament(
    session: Session,
    name: str,
    tournament_type: str,
    format_id: str,
    maps: Sequence[str],
    team_ids: Sequence[str],
    veto_order: Optional[Sequence[Dict[str, Any]]] = None,
) -> Tournament:
    """
    Create a tournament and its bracket.

    Raises:
        UnsupportedTournamentType, FormatNotFound, InvalidVetoOrder,
        PoolSizeMismatch, UnknownTeam, InsufficientTeams
    """
    if tournament_type not in TOURNAMENT_TYPES:
        raise UnsupportedTournamentType(f"Tournament type '{tournament_type}' is not supported")
    try:
        fmt = veto_engine.resolve_validated_format(format_id, veto_order)
    except InvalidVetoOrder as e:
        logger.warning("Rejected custom veto order for %s: %s", format_id, e.message)
        raise
    if len(maps) != fmt.pool_size:
        raise PoolSizeMismatch(f"Format '{format_id}' needs a pool of {fmt.pool_size} maps, got {len(maps)}")
    if len(set(maps)) != len(maps):
        raise PoolSizeMismatch("Map pool contains duplicate maps")
    _check_teams(session, team_ids)

    tournament = Tournament(
        name=name,
        type=tournament_type,
        format=format_id,
        maps=list(maps),
        team_ids=list(team_ids),
        veto_order=fmt.steps_as_dicts() if veto_order else None,
        status=TOURNAMENT_SETUP,
    )
    session.add(tournament)
    session.commit()
    session.refresh(tournament)

    bracket_scheduler.create_bracket(session, tournament)
    logger.info("Tournament %s created: %s (%s, %d teams)", tournament.id, name, format_id, len(team_ids))
    return tournament


def get_active_tournament(session: Session) -> Tournament:
    """The most recently created tournament."""
    tournament = session.exec(select(Tournament).order_by(Tournament.id.desc())).first()
    if tournament is None:
        raise TournamentNotFound("No tournament has been created")
    session.refresh(tournament)
    return tournament


def get_bracket(session: Session, tournament: Tournament) -> List[Dict[str, Any]]:
    """Matches grouped by round: [{"round": 1, "matches": [...]}, ...]"""
    rounds: Dict[int, List[Match]] = {}
    for match in bracket_scheduler.get_tournament_matches(session, tournament.id):
        rounds.setdefault(match.round_number, []).append(match)
    return [{"round": number, "matches": rounds[number]} for number in sorted(rounds)]


def reset_tournament(
    session: Session, tournament: Tournament, registry: MatchRegistry = default_registry
) -> Tournament:
    """
    Drop matches and veto sessions, rebuild the bracket and return to setup.

    Every match lock is held until the new bracket is committed, so an action
    already in flight finishes first and one that arrives later sees the
    rebuilt (pending) match.
    """
    slugs = [m.slug for m in bracket_scheduler.get_tournament_matches(session, tournament.id)]
    with registry.locked_all(slugs):
        matches = [registry.get(session, slug) for slug in slugs]
        for match in matches:
            veto = registry.get_veto(session, match)
            if veto is not None:
                session.delete(veto)  # actions go with it (delete-orphan)
            # Children reference parents through next_match_id
            match.next_match_id = None
            session.add(match)
        session.flush()
        for match in matches:
            session.delete(match)

        session.refresh(tournament)
        tournament.status = TOURNAMENT_SETUP
        tournament.champion_id = None
        tournament.started_at = None
        tournament.completed_at = None
        session.add(tournament)
        session.commit()

        bracket_scheduler.create_bracket(session, tournament)
    session.refresh(tournament)
    logger.info("Tournament %s reset: %d matches rebuilt", tournament.id, len(matches))
    return tournament

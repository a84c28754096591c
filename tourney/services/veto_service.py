"""
Veto actions for a match slug, run inside the match's critical section.

Loading, validating, appending and saving all happen while holding the
per-slug lock, so the loser of a race always sees the advanced log and fails
with NotYourTurn or VetoAlreadyCompleted instead of applying twice.
"""
import logging
from typing import Optional, Tuple

from sqlmodel import Session

from tourney.models.match import MATCH_COMPLETED, MATCH_LIVE, MATCH_READY, MATCH_VETO_IN_PROGRESS, Match
from tourney.models.veto_session import VETO_COMPLETED, VETO_IN_PROGRESS, VetoSession
from tourney.services import veto_engine
from tourney.services.errors import InvalidStatusTransition, MatchNotReady
from tourney.services.match_registry import MatchRegistry, registry as default_registry

logger = logging.getLogger(__name__)


def load_veto(session: Session, slug: str, registry: MatchRegistry = default_registry) -> Tuple[Match, VetoSession]:
    """Return the match and its veto session, raising MatchNotReady if no veto exists yet."""
    match = registry.get(session, slug)
    veto = registry.get_veto(session, match)
    if veto is None:
        raise MatchNotReady(f"Match {slug} has no veto session; both teams must be assigned and the tournament started")
    return match, veto


def submit_action(
    session: Session,
    slug: str,
    team_slug: str,
    map_name: Optional[str] = None,
    side: Optional[str] = None,
    registry: MatchRegistry = default_registry,
) -> Tuple[Match, VetoSession]:
    with registry.locked(slug):
        match, veto = load_veto(session, slug, registry)
        veto_engine.apply_action(veto, team_slug, map_name=map_name, side=side)
        if veto.status == VETO_COMPLETED:
            match.status = MATCH_READY
            logger.info("Match %s is ready", slug)
        registry.save(session, match, veto)
    return match, veto


def reset_veto(session: Session, slug: str, registry: MatchRegistry = default_registry) -> Tuple[Match, VetoSession]:
    """Clear the action log so the teams can redo the veto."""
    with registry.locked(slug):
        match, veto = load_veto(session, slug, registry)
        if match.status in (MATCH_LIVE, MATCH_COMPLETED):
            raise InvalidStatusTransition(f"Cannot reset the veto of a {match.status} match")
        veto.actions.clear()  # delete-orphan cascade removes the rows
        veto.status = VETO_IN_PROGRESS
        veto.completed_at = None
        match.status = MATCH_VETO_IN_PROGRESS
        registry.save(session, match, veto)
        logger.info("Veto reset for match %s", slug)
    return match, veto

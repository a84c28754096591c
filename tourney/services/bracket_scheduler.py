"""
Bracket Scheduler: single-elimination tree, byes and winner advancement.

The bracket is an explicit tree of Match rows. Each match points to its parent
(next_match_id) and to the parent slot it feeds (next_match_slot 1 or 2).
Advancement is an iterative write: put the winner into the parent slot, and if
the parent now has both teams, open its veto session. Byes are resolved the
same way, just without a veto.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from sqlmodel import Session, select

from tourney.models.match import (
    MATCH_COMPLETED,
    MATCH_LIVE,
    MATCH_PENDING,
    MATCH_READY,
    MATCH_VETO_IN_PROGRESS,
    Match,
)
from tourney.models.tournament import (
    TOURNAMENT_COMPLETED,
    TOURNAMENT_IN_PROGRESS,
    TOURNAMENT_SETUP,
    Tournament,
)
from tourney.models.veto_session import VetoSession
from tourney.services import veto_engine
from tourney.services.errors import (
    InsufficientTeams,
    InvalidStatusTransition,
    MatchNotReady,
    TournamentAlreadyStarted,
    TournamentNotFound,
    UnknownWinner,
)
from tourney.services.match_registry import MatchRegistry, registry as default_registry

logger = logging.getLogger(__name__)


@dataclass
class BracketSlot:
    """One planned match before it is persisted."""

    round_number: int
    match_number: int
    team1_id: Optional[str]
    team2_id: Optional[str]
    parent: Optional[Tuple[int, int]]  # (round_number, match_number)
    parent_slot: Optional[int]


def bracket_size(team_count: int) -> int:
    """Smallest power of two >= team_count."""
    size = 1
    while size < team_count:
        size *= 2
    return size


def match_slug(tournament_id: int, round_number: int, match_number: int) -> str:
    return f"t{tournament_id}-r{round_number}m{match_number}"


def plan_bracket(team_ids: Sequence[str]) -> List[BracketSlot]:
    """
    Lay out a single-elimination tree for teams in seed (input) order.

    With B byes, the first (size/2 - B) first-round matches pair consecutive
    teams and the last B matches hold one team each, so no match is empty.
    """
    if len(team_ids) < 2:
        raise InsufficientTeams(f"At least 2 teams are required, got {len(team_ids)}")

    size = bracket_size(len(team_ids))
    first_round = size // 2
    byes = size - len(team_ids)
    paired = first_round - byes

    slots: List[BracketSlot] = []
    total_rounds = size.bit_length() - 1
    cursor = 0
    for number in range(1, first_round + 1):
        if number <= paired:
            team1, team2 = team_ids[cursor], team_ids[cursor + 1]
            cursor += 2
        else:
            team1, team2 = team_ids[cursor], None
            cursor += 1
        slots.append(BracketSlot(1, number, team1, team2, None, None))

    for round_number in range(2, total_rounds + 1):
        for number in range(1, size // (2 ** round_number) + 1):
            slots.append(BracketSlot(round_number, number, None, None, None, None))

    for slot in slots:
        if slot.round_number < total_rounds:
            slot.parent = (slot.round_number + 1, (slot.match_number + 1) // 2)
            slot.parent_slot = 1 if slot.match_number % 2 == 1 else 2
    return slots


def create_bracket(session: Session, tournament: Tournament) -> List[Match]:
    """
    Persist one Match per bracket slot for the tournament, in (round, slot) order.

    Raises:
        InsufficientTeams: fewer than 2 teams
    """
    slots = plan_bracket(tournament.team_ids)
    by_position: Dict[Tuple[int, int], Match] = {}

    # Parents first so children can point at their ids
    for slot in sorted(slots, key=lambda s: -s.round_number):
        match = Match(
            slug=match_slug(tournament.id, slot.round_number, slot.match_number),
            tournament_id=tournament.id,
            round_number=slot.round_number,
            match_number=slot.match_number,
            team1_id=slot.team1_id,
            team2_id=slot.team2_id,
            status=MATCH_PENDING,
        )
        if slot.parent is not None:
            match.next_match_id = by_position[slot.parent].id
            match.next_match_slot = slot.parent_slot
        session.add(match)
        session.flush()
        by_position[(slot.round_number, slot.match_number)] = match

    session.commit()
    matches = [by_position[(s.round_number, s.match_number)] for s in slots]
    for match in matches:
        session.refresh(match)

    logger.info(
        "Bracket created for tournament %s: %d teams, %d matches",
        tournament.id,
        len(tournament.team_ids),
        len(matches),
    )
    return matches


def get_tournament_matches(session: Session, tournament_id: int) -> List[Match]:
    return list(
        session.exec(
            select(Match)
            .where(Match.tournament_id == tournament_id)
            .order_by(Match.round_number, Match.match_number)
        ).all()
    )


def open_veto(session: Session, match: Match, tournament: Tournament) -> VetoSession:
    """Seed the veto session of a match whose two team slots are filled."""
    veto = veto_engine.create_session(match, tournament.format, tournament.maps, tournament.veto_order)
    session.add(veto)
    match.status = MATCH_VETO_IN_PROGRESS
    logger.info("Veto opened for %s: %s vs %s (%s)", match.slug, match.team1_id, match.team2_id, tournament.format)
    return veto


def _is_bye(match: Match) -> bool:
    return match.round_number == 1 and (match.team1_id is None) != (match.team2_id is None)


def start(session: Session, tournament_id: int, registry: MatchRegistry = default_registry) -> Dict[str, int]:
    """
    Activate the tournament's first round.

    Every first-round match with two teams gets a veto session; every bye is
    completed immediately with the sole team as winner and advanced.
    """
    tournament = session.get(Tournament, tournament_id)
    if tournament is None:
        raise TournamentNotFound(f"Tournament {tournament_id} not found")
    if tournament.status != TOURNAMENT_SETUP:
        raise TournamentAlreadyStarted(f"Tournament is already {tournament.status}")

    tournament.status = TOURNAMENT_IN_PROGRESS
    tournament.started_at = datetime.utcnow()
    session.add(tournament)

    vetoes_opened = 0
    byes_resolved = 0
    first_round = [m for m in get_tournament_matches(session, tournament_id) if m.round_number == 1]
    try:
        for match in first_round:
            with registry.locked(match.slug):
                match = registry.get(session, match.slug)
                if match.status == MATCH_PENDING and match.has_both_teams():
                    veto = open_veto(session, match, tournament)
                    registry.save(session, match, veto)
                    vetoes_opened += 1
                elif match.status == MATCH_PENDING and _is_bye(match):
                    winner = match.team1_id or match.team2_id
                    _complete(session, match, winner)
                    registry.save(session, match)
                    logger.info("Bye resolved for %s: %s advances", match.slug, winner)
                    byes_resolved += 1
            # A retried start re-advances completed byes; advance is idempotent
            if match.status == MATCH_COMPLETED:
                vetoes_opened += advance(session, match, tournament, registry)
    except Exception:
        logger.exception("Start of tournament %s failed; returning it to setup", tournament_id)
        session.rollback()
        tournament = session.get(Tournament, tournament_id)
        tournament.status = TOURNAMENT_SETUP
        tournament.started_at = None
        session.add(tournament)
        session.commit()
        raise

    logger.info(
        "Tournament %s started: %d vetoes opened, %d byes resolved", tournament_id, vetoes_opened, byes_resolved
    )
    return {"vetoes_opened": vetoes_opened, "byes_resolved": byes_resolved}


def _complete(session: Session, match: Match, winner_id: str) -> None:
    match.winner_id = winner_id
    match.status = MATCH_COMPLETED
    match.completed_at = datetime.utcnow()
    session.add(match)


def advance(session: Session, match: Match, tournament: Tournament, registry: MatchRegistry = default_registry) -> int:
    """
    Write a completed match's winner into its parent slot.

    Opens the parent's veto when both of its slots are filled. For the final,
    marks the tournament completed with the champion instead.
    Returns the number of veto sessions opened (0 or 1).
    """
    if match.winner_id is None or match.status != MATCH_COMPLETED:
        return 0

    if match.next_match_id is None:
        tournament.status = TOURNAMENT_COMPLETED
        tournament.champion_id = match.winner_id
        tournament.completed_at = datetime.utcnow()
        session.add(tournament)
        session.commit()
        logger.info("Tournament %s completed. Champion: %s", tournament.id, match.winner_id)
        return 0

    parent = session.get(Match, match.next_match_id)
    with registry.locked(parent.slug):
        parent = registry.get(session, parent.slug)
        if match.next_match_slot == 1:
            current = parent.team1_id
        else:
            current = parent.team2_id
        if current is not None and current != match.winner_id:
            raise InvalidStatusTransition(
                f"Cannot advance {match.winner_id} from {match.slug}: "
                f"slot {match.next_match_slot} of {parent.slug} already holds {current}"
            )
        if match.next_match_slot == 1:
            parent.team1_id = match.winner_id
        else:
            parent.team2_id = match.winner_id
        logger.debug(
            "Advanced %s from %s into %s slot %d", match.winner_id, match.slug, parent.slug, match.next_match_slot
        )

        veto = None
        if parent.has_both_teams() and parent.status == MATCH_PENDING:
            veto = open_veto(session, parent, tournament)
        registry.save(session, parent, veto)
        return 1 if veto is not None else 0


def report_result(
    session: Session, slug: str, winner_id: str, registry: MatchRegistry = default_registry
) -> Match:
    """
    Record a match winner and advance the bracket.

    Raises:
        MatchNotFound: unknown slug
        MatchNotReady: match is not ready or live
        UnknownWinner: winner_id is not one of the match's teams
        InvalidStatusTransition: the parent slot already holds another team
    """
    with registry.locked(slug):
        match = registry.get(session, slug)
        if match.status not in (MATCH_READY, MATCH_LIVE):
            raise MatchNotReady(f"Match {slug} is {match.status}; results are accepted only when ready or live")
        if winner_id is None or winner_id not in match.team_slots():
            raise UnknownWinner(f"'{winner_id}' is not playing in match {slug}")

        _complete(session, match, winner_id)
        tournament = session.get(Tournament, match.tournament_id)
        registry.save(session, match)
        logger.info("Result reported for %s: %s wins", slug, winner_id)
        # Parent lock nests inside the child lock; order is always child -> parent
        advance(session, match, tournament, registry)
    return match


def _go_live(session: Session, slug: str, status: str, registry: MatchRegistry) -> Match:
    match = registry.get(session, slug)
    if status != MATCH_LIVE or match.status != MATCH_READY:
        raise InvalidStatusTransition(f"Cannot move match {slug} from {match.status} to {status}")
    match.status = MATCH_LIVE
    registry.save(session, match)
    logger.info("Match %s is live", slug)
    return match


def set_status(session: Session, slug: str, status: str, registry: MatchRegistry = default_registry) -> Match:
    """Runtime status change reported by the game server: only ready -> live is allowed."""
    return registry.with_lock(slug, _go_live, session, slug, status, registry)

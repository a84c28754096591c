"""
Match API Routes
Bracket matches, the MatchZy config document, runtime status and results.
"""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from sqlmodel import Session, select

from tourney.database import get_session
from tourney.models.match import Match
from tourney.models.team import Team
from tourney.routes.serializers import CamelModel, MatchResponse, http_error, match_response
from tourney.services import bracket_scheduler, match_config, settings_service
from tourney.services.errors import MatchEngineError
from tourney.services.match_registry import registry

router = APIRouter()


# ============================================================================
# Request/Response Models
# ============================================================================


class MatchListResponse(CamelModel):
    count: int
    matches: List[MatchResponse]


class MatchDetailResponse(CamelModel):
    match: MatchResponse


class MatchStatusUpdate(CamelModel):
    status: str


class MatchResultRequest(CamelModel):
    winner_id: Optional[str] = None


# ============================================================================
# Endpoints
# ============================================================================


@router.get("/matches", response_model=MatchListResponse)
def list_matches(server_id: Optional[str] = None, session: Session = Depends(get_session)):
    """All matches with team refs, in bracket order. Optional ?server_id= filter."""
    query = select(Match)
    if server_id:
        query = query.where(Match.server_id == server_id)
    query = query.order_by(Match.tournament_id, Match.round_number, Match.match_number)
    matches = [match_response(session, m) for m in session.exec(query).all()]
    return MatchListResponse(count=len(matches), matches=matches)


# Must be registered before /matches/{slug}, which would otherwise capture "x.json"
@router.get("/matches/{slug}.json")
def get_match_config(slug: str, session: Session = Depends(get_session)) -> Dict[str, Any]:
    """
    MatchZy config document for a match whose veto is completed.

    Polled by the game server plugin; the body is the raw config, not wrapped.
    """
    try:
        match = registry.get(session, slug)
        veto = registry.get_veto(session, match)
        team1 = session.get(Team, match.team1_id) if match.team1_id else None
        team2 = session.get(Team, match.team2_id) if match.team2_id else None
        return match_config.render(
            match, veto, team1=team1, team2=team2, webhook_url=settings_service.get_webhook_url(session)
        )
    except MatchEngineError as e:
        raise http_error(e)


@router.get("/matches/{slug}", response_model=MatchDetailResponse)
def get_match(slug: str, session: Session = Depends(get_session)):
    try:
        match = registry.get(session, slug)
    except MatchEngineError as e:
        raise http_error(e)
    return MatchDetailResponse(match=match_response(session, match))


@router.patch("/matches/{slug}/status", response_model=MatchDetailResponse)
def update_match_status(slug: str, request: MatchStatusUpdate, session: Session = Depends(get_session)):
    """Mark a ready match live once the server has loaded it."""
    try:
        match = bracket_scheduler.set_status(session, slug, request.status)
    except MatchEngineError as e:
        raise http_error(e)
    return MatchDetailResponse(match=match_response(session, match))


@router.post("/matches/{slug}/result", response_model=MatchDetailResponse)
def report_match_result(slug: str, request: MatchResultRequest, session: Session = Depends(get_session)):
    """
    Record the winner of a ready or live match.

    Advances the winner into the parent match; opens the parent's veto when
    both of its slots are filled, or completes the tournament for the final.
    """
    try:
        match = bracket_scheduler.report_result(session, slug, request.winner_id)
    except MatchEngineError as e:
        raise http_error(e)
    return MatchDetailResponse(match=match_response(session, match))

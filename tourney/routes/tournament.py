"""
Tournament API Routes
Create the active tournament with its bracket, start it, view and reset it.
"""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import field_validator
from sqlmodel import Session

from tourney.database import get_session
from tourney.routes.serializers import (
    CamelModel,
    MatchResponse,
    TournamentModel,
    TournamentResponse,
    http_error,
    match_response,
    tournament_response,
)
from tourney.services import bracket_scheduler, tournament_service
from tourney.services.errors import MatchEngineError
from tourney.services.tournament_service import SINGLE_ELIMINATION

router = APIRouter()


# ============================================================================
# Request/Response Models
# ============================================================================


class TournamentCreateRequest(CamelModel):
    name: str
    type: str = SINGLE_ELIMINATION
    format: str
    maps: List[str]
    team_ids: List[str]
    veto_order: Optional[List[Dict[str, Any]]] = None

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("name must not be empty")
        return v.strip()


class BracketRound(CamelModel):
    round: int
    matches: List[MatchResponse]


class BracketResponse(CamelModel):
    tournament: TournamentModel
    rounds: List[BracketRound]


class StartResponse(CamelModel):
    tournament: TournamentModel
    vetoes_opened: int
    byes_resolved: int


# ============================================================================
# Endpoints
# ============================================================================


@router.post("/tournament", response_model=TournamentResponse, status_code=201)
def create_tournament(request: TournamentCreateRequest, session: Session = Depends(get_session)):
    """Create a tournament and its single-elimination bracket (status: setup)."""
    try:
        tournament = tournament_service.create_tournament(
            session,
            name=request.name,
            tournament_type=request.type,
            format_id=request.format,
            maps=request.maps,
            team_ids=request.team_ids,
            veto_order=request.veto_order,
        )
    except MatchEngineError as e:
        raise http_error(e)
    return tournament_response(tournament)


@router.get("/tournament", response_model=TournamentResponse)
def get_tournament(session: Session = Depends(get_session)):
    try:
        tournament = tournament_service.get_active_tournament(session)
    except MatchEngineError as e:
        raise http_error(e)
    return tournament_response(tournament)


@router.get("/tournament/bracket", response_model=BracketResponse)
def get_bracket(session: Session = Depends(get_session)):
    try:
        tournament = tournament_service.get_active_tournament(session)
    except MatchEngineError as e:
        raise http_error(e)
    rounds = [
        BracketRound(round=r["round"], matches=[match_response(session, m) for m in r["matches"]])
        for r in tournament_service.get_bracket(session, tournament)
    ]
    return BracketResponse(tournament=TournamentModel.model_validate(tournament), rounds=rounds)


@router.post("/tournament/start", response_model=StartResponse)
def start_tournament(session: Session = Depends(get_session)):
    """
    Start the active tournament.

    Opens a veto for every first-round match with two teams and resolves byes.
    """
    try:
        tournament = tournament_service.get_active_tournament(session)
        result = bracket_scheduler.start(session, tournament.id)
    except MatchEngineError as e:
        raise http_error(e)
    session.refresh(tournament)
    return StartResponse(
        tournament=TournamentModel.model_validate(tournament),
        vetoes_opened=result["vetoes_opened"],
        byes_resolved=result["byes_resolved"],
    )


@router.post("/tournament/reset", response_model=TournamentResponse)
def reset_tournament(session: Session = Depends(get_session)):
    """Delete matches and vetoes, rebuild the bracket and go back to setup."""
    try:
        tournament = tournament_service.get_active_tournament(session)
        tournament = tournament_service.reset_tournament(session, tournament)
    except MatchEngineError as e:
        raise http_error(e)
    return tournament_response(tournament)

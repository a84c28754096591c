"""
Veto API Routes
Read the veto projection of a match and submit ban/pick/side-pick actions.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlmodel import Session

from tourney.database import get_session
from tourney.routes.serializers import CamelModel, VetoResponse, VetoStepModel, http_error, veto_response
from tourney.services import veto_service
from tourney.services.errors import MatchEngineError
from tourney.services.veto_formats import list_formats

router = APIRouter()


# ============================================================================
# Request/Response Models
# ============================================================================


class VetoActionRequest(CamelModel):
    team_slug: str
    map_name: Optional[str] = None
    side: Optional[str] = None


class FormatModel(CamelModel):
    id: str
    name: str
    pool_size: int
    final_map_count: int
    steps: List[VetoStepModel]


class FormatListResponse(CamelModel):
    formats: List[FormatModel]


# ============================================================================
# Endpoints
# ============================================================================


@router.get("/formats", response_model=FormatListResponse)
def get_formats():
    """Registered veto formats with their step tables."""
    return FormatListResponse(
        formats=[
            FormatModel(
                id=f.id,
                name=f.name,
                pool_size=f.pool_size,
                final_map_count=f.final_map_count,
                steps=[VetoStepModel(team=s.team, action=s.action) for s in f.steps],
            )
            for f in list_formats()
        ]
    )


@router.get("/veto/{slug}", response_model=VetoResponse)
def get_veto(slug: str, session: Session = Depends(get_session)):
    try:
        match, veto = veto_service.load_veto(session, slug)
    except MatchEngineError as e:
        raise http_error(e)
    return veto_response(match, veto)


@router.post("/veto/{slug}/action", response_model=VetoResponse)
def submit_veto_action(slug: str, request: VetoActionRequest, session: Session = Depends(get_session)):
    """
    Apply the next veto step for the team identified by teamSlug.

    A rejected action (wrong turn, unavailable map, bad side, finished veto)
    leaves the session untouched; re-fetch GET /api/veto/{slug} and resend.
    """
    try:
        match, veto = veto_service.submit_action(
            session, slug, request.team_slug, map_name=request.map_name, side=request.side
        )
    except MatchEngineError as e:
        raise http_error(e)
    return veto_response(match, veto)


@router.post("/veto/{slug}/reset", response_model=VetoResponse)
def reset_veto(slug: str, session: Session = Depends(get_session)):
    try:
        match, veto = veto_service.reset_veto(session, slug)
    except MatchEngineError as e:
        raise http_error(e)
    return veto_response(match, veto)

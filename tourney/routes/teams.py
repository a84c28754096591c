"""
Team Management API Routes
Minimal registry of teams and rosters referenced by tournament brackets.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import field_validator
from sqlmodel import Session, select

from tourney.database import get_session
from tourney.models.team import Team
from tourney.routes.serializers import CamelModel, PlayerModel, TeamResponse

router = APIRouter()


# ============================================================================
# Request/Response Models
# ============================================================================


class TeamCreateRequest(CamelModel):
    id: str
    name: str
    tag: Optional[str] = None
    players: List[PlayerModel] = []

    @field_validator("id")
    @classmethod
    def id_is_slug(cls, v: str) -> str:
        v = v.strip()
        if not v or "/" in v or " " in v:
            raise ValueError("id must be a non-empty slug without spaces or slashes")
        return v


class TeamListResponse(CamelModel):
    teams: List[TeamResponse]


# ============================================================================
# Team Endpoints
# ============================================================================


@router.get("/teams", response_model=TeamListResponse)
def get_teams(session: Session = Depends(get_session)):
    teams = session.exec(select(Team).order_by(Team.id)).all()
    return TeamListResponse(teams=[TeamResponse.model_validate(t) for t in teams])


@router.get("/teams/{team_id}", response_model=TeamResponse)
def get_team(team_id: str, session: Session = Depends(get_session)):
    team = session.get(Team, team_id)
    if not team:
        raise HTTPException(status_code=404, detail="Team not found")
    return team


@router.post("/teams", response_model=TeamResponse, status_code=201)
def create_team(request: TeamCreateRequest, session: Session = Depends(get_session)):
    """Register a team. The id is a caller-chosen slug and must be unique."""
    if session.get(Team, request.id):
        raise HTTPException(status_code=409, detail=f"Team '{request.id}' already exists")

    team = Team(
        id=request.id,
        name=request.name,
        tag=request.tag,
        players=[p.model_dump(by_alias=True) for p in request.players],
    )
    session.add(team)
    session.commit()
    session.refresh(team)
    return team

"""
Shared response models for the match engine routes.

Wire format is camelCase (mapName, teamSlug, sideTeam1, ...); Python
attributes stay snake_case and are mapped through the alias generator.
"""
from datetime import datetime
from typing import Dict, List, Optional

from fastapi import HTTPException
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from sqlmodel import Session

from tourney.models.match import Match
from tourney.models.team import Team
from tourney.models.tournament import Tournament
from tourney.models.veto_session import VetoSession
from tourney.services import veto_engine
from tourney.services.errors import MatchEngineError
from tourney.services.veto_formats import TEAM1


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


def http_error(exc: MatchEngineError) -> HTTPException:
    """Engine error -> HTTP error carrying "CODE: message" as detail"""
    return HTTPException(status_code=exc.status_code, detail=exc.detail)


# ============================================================================
# Teams
# ============================================================================


class PlayerModel(CamelModel):
    steam_id: str
    name: str


class TeamRef(CamelModel):
    id: str
    name: str
    tag: Optional[str] = None


class TeamResponse(CamelModel):
    id: str
    name: str
    tag: Optional[str] = None
    players: List[PlayerModel] = []
    created_at: datetime


# ============================================================================
# Matches / tournament
# ============================================================================


class MatchResponse(CamelModel):
    id: int
    slug: str
    tournament_id: int
    round_number: int
    match_number: int
    team1_id: Optional[str] = None
    team2_id: Optional[str] = None
    team1: Optional[TeamRef] = None
    team2: Optional[TeamRef] = None
    winner: Optional[TeamRef] = None
    server_id: Optional[str] = None
    status: str
    winner_id: Optional[str] = None
    next_match_id: Optional[int] = None
    next_match_slot: Optional[int] = None
    created_at: datetime
    completed_at: Optional[datetime] = None


class TournamentModel(CamelModel):
    id: int
    name: str
    type: str
    format: str
    status: str
    maps: List[str]
    team_ids: List[str]
    veto_order: Optional[List[Dict[str, str]]] = None
    champion_id: Optional[str] = None
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class TournamentResponse(CamelModel):
    tournament: TournamentModel


def team_refs(session: Session, *team_ids: Optional[str]) -> Dict[str, Team]:
    teams = {}
    for team_id in team_ids:
        if team_id and team_id not in teams:
            team = session.get(Team, team_id)
            if team is not None:
                teams[team_id] = team
    return teams


def match_response(session: Session, match: Match) -> MatchResponse:
    teams = team_refs(session, match.team1_id, match.team2_id, match.winner_id)
    response = MatchResponse.model_validate(match)
    if match.team1_id in teams:
        response.team1 = TeamRef.model_validate(teams[match.team1_id])
    if match.team2_id in teams:
        response.team2 = TeamRef.model_validate(teams[match.team2_id])
    if match.winner_id in teams:
        response.winner = TeamRef.model_validate(teams[match.winner_id])
    return response


def tournament_response(tournament: Tournament) -> TournamentResponse:
    return TournamentResponse(tournament=TournamentModel.model_validate(tournament))


# ============================================================================
# Veto
# ============================================================================


class VetoStepModel(CamelModel):
    team: str
    action: str


class PickedMapModel(CamelModel):
    map_name: str
    order: int
    picked_by: str
    side_team1: Optional[str] = None
    side_team2: Optional[str] = None


class VetoActionModel(CamelModel):
    step_index: int
    team: str
    team_slug: str
    action: str
    map_name: Optional[str] = None
    side: Optional[str] = None
    timestamp: Optional[datetime] = None


class VetoModel(CamelModel):
    match_slug: str
    format: str
    status: str
    team1_id: Optional[str] = None
    team2_id: Optional[str] = None
    current_step: int
    total_steps: int
    current_turn: Optional[str] = None  # team slug whose move it is
    current_action: Optional[str] = None
    steps: List[VetoStepModel]
    all_maps: List[str]
    available_maps: List[str]
    banned_maps: List[str]
    picked_maps: List[PickedMapModel]
    actions: List[VetoActionModel]
    completed_at: Optional[datetime] = None


class VetoResponse(CamelModel):
    veto: VetoModel


def veto_response(match: Match, veto: VetoSession) -> VetoResponse:
    state = veto_engine.get_state(veto)
    step = state.current_step
    current_turn = None
    if step is not None:
        current_turn = veto.team1_id if step.team == TEAM1 else veto.team2_id
    return VetoResponse(
        veto=VetoModel(
            match_slug=match.slug,
            format=veto.format_id,
            status=state.status,
            team1_id=veto.team1_id,
            team2_id=veto.team2_id,
            current_step=state.next_step_index,
            total_steps=state.total_steps,
            current_turn=current_turn,
            current_action=step.action if step is not None else None,
            steps=[VetoStepModel(team=s.team, action=s.action) for s in state.steps],
            all_maps=state.all_maps,
            available_maps=state.available_maps,
            banned_maps=state.banned_maps,
            picked_maps=[PickedMapModel.model_validate(p) for p in state.picked_maps],
            actions=[VetoActionModel.model_validate(a) for a in state.actions],
            completed_at=veto.completed_at,
        )
    )

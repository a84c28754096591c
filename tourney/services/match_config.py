"""
MatchZy match configuration rendering.

Turns a completed veto into the JSON document the game server plugin loads
(``matchzy_loadmatch_url``). The document is derived entirely from the veto
state, so rendering the same match twice yields the same maplist and sides.
"""
import logging
from typing import Any, Dict, Optional

from tourney.models.match import Match
from tourney.models.team import Team
from tourney.models.veto_session import VETO_COMPLETED, VetoSession
from tourney.services import veto_engine
from tourney.services.errors import VetoNotComplete
from tourney.services.veto_formats import SIDE_CT

logger = logging.getLogger(__name__)

TEAM1_CT = "team1_ct"
TEAM2_CT = "team2_ct"
TAG_LENGTH = 4
EVENTS_PATH = "/api/events"


def map_side(side_team1: Optional[str]) -> str:
    return TEAM1_CT if side_team1 == SIDE_CT else TEAM2_CT


def _team_block(team_id: Optional[str], team: Optional[Team]) -> Dict[str, Any]:
    if team is None:
        fallback = team_id or ""
        return {"id": team_id, "name": fallback, "tag": fallback[:TAG_LENGTH].upper(), "players": {}, "series_score": 0}
    players = {}
    for player in team.players or []:
        steam_id = player.get("steamId")
        if steam_id:
            players[str(steam_id)] = player.get("name") or str(steam_id)
    return {
        "id": team.id,
        "name": team.name,
        "tag": team.tag or team.name[:TAG_LENGTH].upper(),
        "players": players,
        "series_score": 0,
    }


def _players_per_team(*teams: Optional[Team]) -> int:
    sizes = [len(t.players or []) for t in teams if t is not None]
    return max([1] + sizes)


def render(
    match: Match,
    veto: VetoSession,
    team1: Optional[Team] = None,
    team2: Optional[Team] = None,
    webhook_url: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Build the MatchZy config for a match whose veto is completed.

    Raises:
        VetoNotComplete: the veto has not reached its last step
    """
    if veto is None or veto.status != VETO_COMPLETED:
        raise VetoNotComplete(f"Veto for match {match.slug} is not complete")

    state = veto_engine.get_state(veto)
    picked = sorted(state.picked_maps, key=lambda p: p.order)

    config: Dict[str, Any] = {
        "matchid": match.slug,
        "num_maps": len(picked),
        "maplist": [p.map_name for p in picked],
        "map_sides": [map_side(p.side_team1) for p in picked],
        "players_per_team": _players_per_team(team1, team2),
        "min_players_to_ready": 1,
        "min_spectators_to_ready": 0,
        "skip_veto": True,
        "clinch_series": True,
        "wingman": False,
        "spectators": {"players": {}},
        "team1": _team_block(match.team1_id, team1),
        "team2": _team_block(match.team2_id, team2),
    }
    if webhook_url:
        config["cvars"] = {"matchzy_remote_log_url": f"{webhook_url}{EVENTS_PATH}"}
    else:
        logger.warning("No webhook URL configured; %s will not report events back", match.slug)

    logger.info("Rendered config for %s: %s %s", match.slug, config["maplist"], config["map_sides"])
    return config

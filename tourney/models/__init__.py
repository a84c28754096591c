from tourney.models.app_setting import AppSetting
from tourney.models.match import Match
from tourney.models.team import Team
from tourney.models.tournament import Tournament
from tourney.models.veto_session import VetoAction, VetoSession

__all__ = [
    "AppSetting",
    "Match",
    "Team",
    "Tournament",
    "VetoAction",
    "VetoSession",
]

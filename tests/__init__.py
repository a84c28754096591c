# Force SQLModel table registration at test discovery time
# This ensures all models are registered before any test database creation
from tourney.models.app_setting import AppSetting  # noqa: F401
from tourney.models.match import Match  # noqa: F401
from tourney.models.team import Team  # noqa: F401
from tourney.models.tournament import Tournament  # noqa: F401
from tourney.models.veto_session import VetoAction, VetoSession  # noqa: F401

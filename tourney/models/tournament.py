from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from sqlalchemy import JSON
from sqlmodel import Column, Field, Relationship, SQLModel

if TYPE_CHECKING:
    from tourney.models.match import Match

TOURNAMENT_SETUP = "setup"
TOURNAMENT_IN_PROGRESS = "in_progress"
TOURNAMENT_COMPLETED = "completed"


class Tournament(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    type: str  # "single_elimination"
    format: str  # veto format id, e.g. "bo1-cs-major"
    status: str = Field(default=TOURNAMENT_SETUP)  # "setup" | "in_progress" | "completed"
    maps: List[str] = Field(sa_column=Column(JSON, nullable=False))
    team_ids: List[str] = Field(sa_column=Column(JSON, nullable=False))  # seed order
    # Optional per-tournament replacement for the format's step table
    veto_order: Optional[List[Dict[str, Any]]] = Field(default=None, sa_column=Column(JSON, nullable=True))
    champion_id: Optional[str] = Field(default=None, foreign_key="team.id")
    created_at: datetime = Field(default_factory=datetime.utcnow)
    started_at: Optional[datetime] = Field(default=None)
    completed_at: Optional[datetime] = Field(default=None)

    # Relationships
    matches: List["Match"] = Relationship(back_populates="tournament")

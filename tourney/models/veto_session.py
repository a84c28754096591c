from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from sqlalchemy import JSON, UniqueConstraint as SAUniqueConstraint
from sqlmodel import Column, Field, Relationship, SQLModel

if TYPE_CHECKING:
    from tourney.models.match import Match

VETO_PENDING = "pending"
VETO_IN_PROGRESS = "in_progress"
VETO_COMPLETED = "completed"


class VetoSession(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    match_id: int = Field(foreign_key="match.id", unique=True)
    format_id: str
    map_pool: List[str] = Field(sa_column=Column(JSON, nullable=False))  # original pool order
    # Step table in force for this session: [{"team": "team1", "action": "ban"}, ...]
    steps: List[Dict[str, Any]] = Field(sa_column=Column(JSON, nullable=False))
    # Team slots snapshotted from the match when the session opens
    team1_id: Optional[str] = Field(default=None, foreign_key="team.id")
    team2_id: Optional[str] = Field(default=None, foreign_key="team.id")
    status: str = Field(default=VETO_IN_PROGRESS)  # "pending" | "in_progress" | "completed"
    created_at: datetime = Field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = Field(default=None)

    # Relationships
    match: "Match" = Relationship(back_populates="veto_session")
    actions: List["VetoAction"] = Relationship(
        back_populates="veto_session",
        sa_relationship_kwargs={"order_by": "VetoAction.step_index", "cascade": "all, delete-orphan"},
    )


class VetoAction(SQLModel, table=True):
    """One executed step of a veto. The log is append-only."""

    __table_args__ = (SAUniqueConstraint("veto_session_id", "step_index", name="uq_vetoaction_session_step"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    veto_session_id: int = Field(foreign_key="vetosession.id", index=True)
    step_index: int  # 0-based position in the step table
    team: str  # "team1" | "team2"
    team_slug: str
    action: str  # "ban" | "pick" | "side_pick"
    map_name: Optional[str] = Field(default=None)
    side: Optional[str] = Field(default=None)  # "T" | "CT"
    created_at: datetime = Field(default_factory=datetime.utcnow)

    veto_session: VetoSession = Relationship(back_populates="actions")

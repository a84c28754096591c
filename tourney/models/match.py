from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from tourney.models.tournament import Tournament
    from tourney.models.veto_session import VetoSession

MATCH_PENDING = "pending"
MATCH_VETO_IN_PROGRESS = "veto_in_progress"
MATCH_READY = "ready"
MATCH_LIVE = "live"
MATCH_COMPLETED = "completed"


class Match(SQLModel, table=True):
    __table_args__ = (
        SAUniqueConstraint("tournament_id", "round_number", "match_number", name="uq_match_bracket_position"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    slug: str = Field(unique=True, index=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    round_number: int  # 1-based
    match_number: int  # 1-based slot within the round

    # Team slots (nullable until a bye or a feeder match resolves them)
    team1_id: Optional[str] = Field(default=None, foreign_key="team.id")
    team2_id: Optional[str] = Field(default=None, foreign_key="team.id")
    server_id: Optional[str] = Field(default=None)

    status: str = Field(default=MATCH_PENDING)
    winner_id: Optional[str] = Field(default=None, foreign_key="team.id")

    # Parent pointer: the winner is written into next_match.team{next_match_slot}_id
    next_match_id: Optional[int] = Field(default=None, foreign_key="match.id")
    next_match_slot: Optional[int] = Field(default=None)  # 1 | 2

    created_at: datetime = Field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = Field(default=None)

    # Relationships
    tournament: "Tournament" = Relationship(back_populates="matches")
    veto_session: Optional["VetoSession"] = Relationship(
        back_populates="match", sa_relationship_kwargs={"uselist": False}
    )

    def team_slots(self):
        return (self.team1_id, self.team2_id)

    def has_both_teams(self) -> bool:
        return self.team1_id is not None and self.team2_id is not None

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON
from sqlmodel import Column, Field, SQLModel


class Team(SQLModel, table=True):
    id: str = Field(primary_key=True)  # slug, chosen by the caller
    name: str
    tag: Optional[str] = Field(default=None)
    # Ordered roster: [{"steamId": "7656...", "name": "..."}]
    players: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    created_at: datetime = Field(default_factory=datetime.utcnow)

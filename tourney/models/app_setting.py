from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel

SETTING_WEBHOOK_URL = "webhook_url"


class AppSetting(SQLModel, table=True):
    key: str = Field(primary_key=True)
    value: Optional[str] = None
    updated_at: datetime = Field(default_factory=datetime.utcnow, sa_column_kwargs={"onupdate": datetime.utcnow})

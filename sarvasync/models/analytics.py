# sarvasync/models/analytics.py
from sqlmodel import SQLModel, Field, Column
from typing import Optional
import datetime as dt
import uuid
from sqlalchemy import JSON, DateTime, UniqueConstraint

from sarvasync.UAA.models import utcnow

DAILY = "daily"


class Analytics(SQLModel, table=True):
    """Per-day engagement rollup for one linked account."""

    __tablename__ = "analytics"
    __table_args__ = (
        UniqueConstraint("user_id", "linked_account_id", "date", "period", name="uq_analytics_account_day"),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    user_id: uuid.UUID = Field(foreign_key="users.id", index=True)
    linked_account_id: uuid.UUID = Field(foreign_key="linked_accounts.id", index=True)
    date: dt.date
    period: str = Field(default=DAILY)
    views: int = Field(default=0)
    likes: int = Field(default=0)
    comments: int = Field(default=0)
    shares: int = Field(default=0)
    followers: int = Field(default=0)
    engagement_rate: float = Field(default=0.0)
    raw_data: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    created_at: dt.datetime = Field(default_factory=utcnow, sa_column=Column(DateTime(timezone=True)))
    updated_at: dt.datetime = Field(default_factory=utcnow, sa_column=Column(DateTime(timezone=True)))

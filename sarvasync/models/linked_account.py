# sarvasync/models/linked_account.py
from sqlmodel import SQLModel, Field, Column
from typing import Optional
from datetime import datetime
from enum import Enum
import uuid
from sqlalchemy import String, JSON, Text, DateTime, UniqueConstraint

from sarvasync.UAA.models import utcnow


class AuthProvider(str, Enum):
    GOOGLE = "GOOGLE"


class LinkedAccount(SQLModel, table=True):
    """A third-party identity bound to one local user. Tokens are vault envelopes."""

    __tablename__ = "linked_accounts"
    __table_args__ = (UniqueConstraint("user_id", "provider", name="uq_linked_accounts_user_provider"),)

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    user_id: uuid.UUID = Field(foreign_key="users.id", index=True)
    provider: AuthProvider = Field(sa_column=Column(String, index=True, nullable=False))
    provider_account_id: str
    access_token: str = Field(sa_column=Column(Text, nullable=False))
    refresh_token: Optional[str] = Field(default=None, sa_column=Column(Text))
    token_expires_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    scope: Optional[str] = None
    display_name: Optional[str] = None
    username: Optional[str] = None
    follower_count: int = Field(default=0)
    platform_data: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    is_active: bool = Field(default=True, index=True)
    last_sync: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    created_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime(timezone=True)))
    updated_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime(timezone=True)))

# sarvasync/infrastructure/provider.py
"""Capability interface for third-party video platforms.

The linking flow and the analytics sync only talk to a ProviderClient, so
they can run against a fake in tests. Token rotation performed by a client is
reported as a TokenRefreshed event to the single listener attached to the
credentials it was given.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional

from sarvasync.models.linked_account import AuthProvider


@dataclass(frozen=True)
class TokenRefreshed:
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None


TokenRefreshListener = Callable[[TokenRefreshed], Awaitable[None]]


@dataclass
class ProviderCredentials:
    """Decrypted tokens for one linked account, updated in place when rotated."""

    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None
    on_refresh: Optional[TokenRefreshListener] = None

    async def apply_refresh(self, event: TokenRefreshed) -> None:
        self.access_token = event.access_token
        if event.refresh_token:
            self.refresh_token = event.refresh_token
        if event.expires_at:
            self.expires_at = event.expires_at
        if self.on_refresh is not None:
            await self.on_refresh(event)


@dataclass(frozen=True)
class ProviderTokens:
    access_token: str
    refresh_token: Optional[str]
    expires_at: Optional[datetime]
    scope: Optional[str]


@dataclass(frozen=True)
class ProviderProfile:
    account_id: str
    display_name: Optional[str] = None
    username: Optional[str] = None
    follower_count: int = 0
    email: Optional[str] = None
    name: Optional[str] = None
    avatar_url: Optional[str] = None
    platform_data: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class DailyMetrics:
    day: date
    views: int = 0
    likes: int = 0
    comments: int = 0
    shares: int = 0
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def engagement_rate(self) -> float:
        if not self.views:
            return 0.0
        return round((self.likes + self.comments + self.shares) / self.views, 6)


class ProviderClient(ABC):
    provider: AuthProvider

    @abstractmethod
    def authorization_url(self, state: str) -> str:
        """Provider consent URL carrying ``state`` untouched, offline access and forced consent."""

    @abstractmethod
    async def exchange_code(self, code: str) -> ProviderTokens:
        ...

    @abstractmethod
    async def fetch_profile(self, credentials: ProviderCredentials) -> ProviderProfile:
        """Raise NoResourceError when the account lacks the resource we link against."""

    @abstractmethod
    async def fetch_metrics(self, credentials: ProviderCredentials, start: date, end: date) -> List[DailyMetrics]:
        ...

    @abstractmethod
    async def fetch_follower_count(self, credentials: ProviderCredentials) -> int:
        ...

    @abstractmethod
    async def upload_media(self, credentials: ProviderCredentials, path: str, metadata: Dict[str, Any]) -> str:
        ...

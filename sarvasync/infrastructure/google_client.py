# sarvasync/infrastructure/google_client.py
import asyncio
import os
from datetime import date, datetime, timezone
from functools import lru_cache
from typing import Any, Callable, Dict, List, Optional, TypeVar

import httpx
import structlog
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaFileUpload

from sarvasync.config import get_settings
from sarvasync.errors import NoResourceError
from sarvasync.infrastructure.provider import (
    DailyMetrics, ProviderClient, ProviderCredentials, ProviderProfile, ProviderTokens, TokenRefreshed,
)
from sarvasync.models.linked_account import AuthProvider

# Google may grant a superset of the requested scopes (e.g. openid for profile)
os.environ.setdefault("OAUTHLIB_RELAX_TOKEN_SCOPE", "1")

logger = structlog.get_logger(__name__)

T = TypeVar("T")

AUTH_URI = "https://accounts.google.com/o/oauth2/auth"
TOKEN_URI = "https://oauth2.googleapis.com/token"
USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"

SCOPES = [
    "openid",
    "https://www.googleapis.com/auth/userinfo.profile",
    "https://www.googleapis.com/auth/userinfo.email",
    "https://www.googleapis.com/auth/youtube.upload",
    "https://www.googleapis.com/auth/youtube.readonly",
    "https://www.googleapis.com/auth/yt-analytics.readonly",
]

ANALYTICS_METRICS = "views,likes,comments,shares"


def _to_aware(value: Optional[datetime]) -> Optional[datetime]:
    # google-auth keeps expiry as naive UTC
    if value is None:
        return None
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class GoogleProviderClient(ProviderClient):
    """YouTube channel linking, analytics and uploads via Google's client libraries."""

    provider = AuthProvider.GOOGLE

    def __init__(self, client_id: str, client_secret: str, redirect_uri: str):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri

    def _client_config(self) -> Dict[str, Any]:
        return {
            "web": {
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "auth_uri": AUTH_URI,
                "token_uri": TOKEN_URI,
                "redirect_uris": [self.redirect_uri],
            }
        }

    def _flow(self) -> Flow:
        # stateless round trip: no PKCE verifier survives between redirect and callback
        return Flow.from_client_config(
            self._client_config(),
            scopes=SCOPES,
            redirect_uri=self.redirect_uri,
            autogenerate_code_verifier=False,
        )

    def authorization_url(self, state: str) -> str:
        url, _ = self._flow().authorization_url(
            access_type="offline",
            prompt="consent",
            include_granted_scopes="true",
            state=state,
        )
        return url

    async def exchange_code(self, code: str) -> ProviderTokens:
        flow = self._flow()
        await asyncio.to_thread(flow.fetch_token, code=code)
        creds = flow.credentials
        if not creds.refresh_token:
            logger.warning("google_no_refresh_token")
        scopes = creds.granted_scopes or creds.scopes or SCOPES
        return ProviderTokens(
            access_token=creds.token,
            refresh_token=creds.refresh_token,
            expires_at=_to_aware(creds.expiry),
            scope=" ".join(scopes),
        )

    def _google_credentials(self, credentials: ProviderCredentials) -> Credentials:
        return Credentials(
            token=credentials.access_token,
            refresh_token=credentials.refresh_token,
            token_uri=TOKEN_URI,
            client_id=self.client_id,
            client_secret=self.client_secret,
            scopes=SCOPES,
            expiry=_to_naive_utc(credentials.expires_at),
        )

    async def _call(self, credentials: ProviderCredentials, fn: Callable[[Credentials], T]) -> T:
        """Run a blocking API call; report any token rotation the client library performed."""
        creds = self._google_credentials(credentials)
        try:
            return await asyncio.to_thread(fn, creds)
        finally:
            if creds.token and creds.token != credentials.access_token:
                logger.info("google_token_refreshed")
                rotated_refresh = creds.refresh_token if creds.refresh_token != credentials.refresh_token else None
                await credentials.apply_refresh(
                    TokenRefreshed(
                        access_token=creds.token,
                        refresh_token=rotated_refresh,
                        expires_at=_to_aware(creds.expiry),
                    )
                )

    async def _fetch_userinfo(self, access_token: str) -> Dict[str, Any]:
        try:
            async with httpx.AsyncClient(timeout=10.0) as client:
                resp = await client.get(USERINFO_URL, headers={"Authorization": f"Bearer {access_token}"})
                resp.raise_for_status()
                return resp.json()
        except httpx.HTTPError as e:
            # profile backfill is optional; the channel lookup is the source of truth
            logger.warning("google_userinfo_failed", error=str(e))
            return {}

    async def fetch_profile(self, credentials: ProviderCredentials) -> ProviderProfile:
        def _channels(creds: Credentials) -> Dict[str, Any]:
            youtube = build("youtube", "v3", credentials=creds, cache_discovery=False)
            return youtube.channels().list(part="snippet,statistics", mine=True).execute()

        response = await self._call(credentials, _channels)
        items = response.get("items") or []
        if not items:
            raise NoResourceError()

        channel = items[0]
        snippet = channel.get("snippet", {})
        statistics = channel.get("statistics", {})
        userinfo = await self._fetch_userinfo(credentials.access_token)
        return ProviderProfile(
            account_id=channel["id"],
            display_name=snippet.get("title"),
            username=snippet.get("customUrl"),
            follower_count=int(statistics.get("subscriberCount") or 0),
            email=userinfo.get("email"),
            name=userinfo.get("name"),
            avatar_url=userinfo.get("picture"),
            platform_data={
                "channelId": channel["id"],
                "channelUrl": f"https://www.youtube.com/channel/{channel['id']}",
                "viewCount": statistics.get("viewCount"),
                "videoCount": statistics.get("videoCount"),
                "googleUserId": userinfo.get("id"),
            },
        )

    async def fetch_metrics(self, credentials: ProviderCredentials, start: date, end: date) -> List[DailyMetrics]:
        def _report(creds: Credentials) -> Dict[str, Any]:
            analytics = build("youtubeAnalytics", "v2", credentials=creds, cache_discovery=False)
            return analytics.reports().query(
                ids="channel==MINE",
                startDate=start.isoformat(),
                endDate=end.isoformat(),
                metrics=ANALYTICS_METRICS,
                dimensions="day",
                sort="day",
            ).execute()

        response = await self._call(credentials, _report)
        headers = [h["name"] for h in response.get("columnHeaders", [])]
        metrics = []
        for row in response.get("rows") or []:
            values = dict(zip(headers, row))
            metrics.append(
                DailyMetrics(
                    day=date.fromisoformat(values["day"]),
                    views=int(values.get("views") or 0),
                    likes=int(values.get("likes") or 0),
                    comments=int(values.get("comments") or 0),
                    shares=int(values.get("shares") or 0),
                    raw=values,
                )
            )
        return metrics

    async def fetch_follower_count(self, credentials: ProviderCredentials) -> int:
        def _statistics(creds: Credentials) -> Dict[str, Any]:
            youtube = build("youtube", "v3", credentials=creds, cache_discovery=False)
            return youtube.channels().list(part="statistics", mine=True).execute()

        response = await self._call(credentials, _statistics)
        items = response.get("items") or []
        if not items:
            raise NoResourceError()
        return int(items[0].get("statistics", {}).get("subscriberCount") or 0)

    async def upload_media(self, credentials: ProviderCredentials, path: str, metadata: Dict[str, Any]) -> str:
        body = {
            "snippet": {
                "title": metadata.get("title", ""),
                "description": metadata.get("description", ""),
                "tags": metadata.get("tags") or [],
                "categoryId": metadata.get("categoryId", "22"),
            },
            "status": {"privacyStatus": metadata.get("privacyStatus", "private")},
        }

        def _insert(creds: Credentials) -> Dict[str, Any]:
            youtube = build("youtube", "v3", credentials=creds, cache_discovery=False)
            media = MediaFileUpload(path, chunksize=-1, resumable=True)
            return youtube.videos().insert(part="snippet,status", body=body, media_body=media).execute()

        try:
            response = await self._call(credentials, _insert)
        except HttpError as e:
            logger.error("youtube_upload_failed", path=path, status=e.resp.status)
            raise
        logger.info("youtube_upload_completed", video_id=response["id"])
        return response["id"]


@lru_cache
def get_google_client() -> GoogleProviderClient:
    s = get_settings()
    return GoogleProviderClient(
        client_id=s.GOOGLE_CLIENT_ID,
        client_secret=s.GOOGLE_CLIENT_SECRET,
        redirect_uri=f"{s.SERVER_URL.rstrip('/')}/connect/google/callback",
    )

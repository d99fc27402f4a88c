# sarvasync/services/analytics_sync.py
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Dict, Optional
import uuid

import structlog
from sqlmodel.ext.asyncio.session import AsyncSession

from sarvasync.UAA.models import utcnow
from sarvasync.infrastructure.analytics_repo import AnalyticsRepository
from sarvasync.infrastructure.database import get_session
from sarvasync.infrastructure.linked_accounts_repo import LinkedAccountRepository
from sarvasync.infrastructure.provider import ProviderClient
from sarvasync.infrastructure.vault import CredentialVault, get_vault
from sarvasync.models.linked_account import AuthProvider, LinkedAccount
from sarvasync.services.linking_service import build_credentials

logger = structlog.get_logger(__name__)

WINDOW_DAYS = 30


def _utc_today() -> date:
    return datetime.now(timezone.utc).date()


def report_window(today: date, days: int = WINDOW_DAYS):
    """Inclusive ``days``-long window ending yesterday; today is never complete yet."""
    end = today - timedelta(days=1)
    return end - timedelta(days=days - 1), end


@dataclass
class SyncReport:
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0


class AnalyticsSyncService:
    def __init__(
        self,
        clients: Dict[AuthProvider, ProviderClient],
        session_factory=get_session,
        vault: Optional[CredentialVault] = None,
        today: Callable[[], date] = _utc_today,
    ):
        self.clients = clients
        self.session_factory = session_factory
        self.vault = vault or get_vault()
        self.today = today

    async def run(self) -> SyncReport:
        report = SyncReport()
        logger.info("analytics_sync_started")
        try:
            async with self.session_factory() as session:
                accounts = await LinkedAccountRepository(session).list_active()
            targets = [(a.id, a.provider) for a in accounts]
            report.total = len(targets)
            logger.info("analytics_sync_accounts_found", count=report.total)

            for account_id, provider in targets:
                outcome = await self._sync_one(account_id, provider)
                setattr(report, outcome, getattr(report, outcome) + 1)
        except Exception:
            logger.exception("analytics_sync_run_failed")
        finally:
            logger.info(
                "analytics_sync_finished",
                total=report.total,
                succeeded=report.succeeded,
                failed=report.failed,
                skipped=report.skipped,
            )
        return report

    async def _sync_one(self, account_id: uuid.UUID, provider: str) -> str:
        log = logger.bind(linked_account_id=str(account_id), provider=provider)
        if provider != AuthProvider.GOOGLE.value or AuthProvider.GOOGLE not in self.clients:
            log.info("analytics_sync_provider_skipped")
            return "skipped"
        try:
            async with self.session_factory() as session:
                account = await LinkedAccountRepository(session).get_by_id(account_id)
                if account is None:
                    log.info("analytics_sync_account_gone")
                    return "skipped"
                days = await self.sync_youtube_account(session, account)
        except Exception as e:
            # one account never aborts the batch
            log.error("analytics_sync_account_failed", error=str(e), exc_info=True)
            return "failed"
        log.info("analytics_sync_account_done", days=days)
        return "succeeded"

    async def sync_youtube_account(self, session: AsyncSession, account: LinkedAccount) -> int:
        """Store a 30-day daily report for one channel. Returns the number of days written."""
        client = self.clients[AuthProvider.GOOGLE]
        credentials = build_credentials(account, self.vault)
        start, end = report_window(self.today())

        followers = account.follower_count or 0
        try:
            followers = await client.fetch_follower_count(credentials)
        except Exception as e:
            logger.warning("follower_refresh_failed", linked_account_id=str(account.id), error=str(e))

        metrics = await client.fetch_metrics(credentials, start, end)

        analytics = AnalyticsRepository(session)
        for day in metrics:
            await analytics.upsert(
                account.user_id,
                account.id,
                day.day,
                {
                    "views": day.views,
                    "likes": day.likes,
                    "comments": day.comments,
                    "shares": day.shares,
                    "followers": followers,
                    "engagement_rate": day.engagement_rate,
                },
                raw_data=day.raw,
            )

        accounts = LinkedAccountRepository(session)
        account.follower_count = followers
        account.last_sync = utcnow()
        accounts.stage(account)
        await accounts.commit()
        return len(metrics)

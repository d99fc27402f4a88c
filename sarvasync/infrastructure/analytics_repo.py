# sarvasync/infrastructure/analytics_repo.py
from typing import List, Optional
from datetime import date
import uuid

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from sarvasync.models.analytics import Analytics, DAILY
from sarvasync.UAA.models import utcnow
from sarvasync.infrastructure.database import commit_or_raise

METRIC_FIELDS = ("views", "likes", "comments", "shares", "followers", "engagement_rate")


class AnalyticsRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, user_id: uuid.UUID, linked_account_id: uuid.UUID, day: date, period: str = DAILY) -> Optional[Analytics]:
        q = select(Analytics).where(
            Analytics.user_id == user_id,
            Analytics.linked_account_id == linked_account_id,
            Analytics.date == day,
            Analytics.period == period,
        )
        res = await self.session.execute(q)
        return res.scalar_one_or_none()

    async def list_for_account(self, linked_account_id: uuid.UUID) -> List[Analytics]:
        q = select(Analytics).where(Analytics.linked_account_id == linked_account_id).order_by(Analytics.date)
        res = await self.session.execute(q)
        return list(res.scalars().all())

    async def upsert(
        self,
        user_id: uuid.UUID,
        linked_account_id: uuid.UUID,
        day: date,
        metrics: dict,
        raw_data: Optional[dict] = None,
        period: str = DAILY,
    ) -> Analytics:
        """Stage one rollup row keyed by (user, account, day, period); existing rows are overwritten."""
        row = await self.get(user_id, linked_account_id, day, period)
        if row is None:
            row = Analytics(user_id=user_id, linked_account_id=linked_account_id, date=day, period=period)
        for field in METRIC_FIELDS:
            if field in metrics:
                setattr(row, field, metrics[field])
        row.raw_data = raw_data
        row.updated_at = utcnow()
        self.session.add(row)
        await self.session.flush()
        return row

    async def commit(self) -> None:
        await commit_or_raise(self.session)

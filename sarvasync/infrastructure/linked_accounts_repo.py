# sarvasync/infrastructure/linked_accounts_repo.py
from typing import Optional, List
from sqlmodel.ext.asyncio.session import AsyncSession
from sqlmodel import select
from sarvasync.models.linked_account import LinkedAccount, AuthProvider
from sarvasync.UAA.models import utcnow
from sarvasync.infrastructure.database import commit_or_raise
import uuid
from datetime import datetime


class LinkedAccountRepository:
    """
    Repository for LinkedAccount rows.
    Write helpers only stage changes; callers decide where the transaction ends
    via commit(), so multi-row updates stay all-or-nothing.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, id: uuid.UUID) -> Optional[LinkedAccount]:
        q = select(LinkedAccount).where(LinkedAccount.id == id)
        res = await self.session.execute(q)
        return res.scalar_one_or_none()

    async def get_by_user_and_provider(self, user_id: uuid.UUID, provider: AuthProvider) -> Optional[LinkedAccount]:
        q = select(LinkedAccount).where(
            LinkedAccount.user_id == user_id,
            LinkedAccount.provider == provider.value
        )
        res = await self.session.execute(q)
        return res.scalar_one_or_none()

    async def list_by_user(self, user_id: uuid.UUID) -> List[LinkedAccount]:
        q = select(LinkedAccount).where(LinkedAccount.user_id == user_id)
        res = await self.session.execute(q)
        return list(res.scalars().all())

    async def list_active(self) -> List[LinkedAccount]:
        q = select(LinkedAccount).where(LinkedAccount.is_active == True).order_by(LinkedAccount.created_at)  # noqa: E712
        res = await self.session.execute(q)
        return list(res.scalars().all())

    def stage(self, account: LinkedAccount) -> LinkedAccount:
        account.updated_at = utcnow()
        self.session.add(account)
        return account

    async def update_tokens(
        self,
        account_id: uuid.UUID,
        access_token_enc: str,
        refresh_token_enc: Optional[str],
        expires_at: Optional[datetime],
    ) -> Optional[LinkedAccount]:
        """
        Persist rotated provider tokens. A None refresh token keeps the stored one.
        Commits and returns the refreshed row, or None when the account is gone.
        """
        account = await self.get_by_id(account_id)
        if account is None:
            return None
        account.access_token = access_token_enc
        if refresh_token_enc is not None:
            account.refresh_token = refresh_token_enc
        if expires_at is not None:
            account.token_expires_at = expires_at
        account.last_sync = utcnow()
        self.stage(account)
        await self.commit()
        await self.session.refresh(account)
        return account

    async def commit(self) -> None:
        await commit_or_raise(self.session)

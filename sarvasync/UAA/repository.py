# sarvasync/UAA/repository.py
from sqlmodel.ext.asyncio.session import AsyncSession
from sqlmodel import select
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError as DBIntegrityError
from .models import User, RefreshToken
from sarvasync.errors import PersistenceError
from sarvasync.infrastructure.database import commit_or_raise
from typing import Optional, Tuple
import uuid


class UserRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_email(self, email: str) -> Optional[User]:
        q = select(User).where(User.email == email)
        res = await self.session.execute(q)
        return res.scalar_one_or_none()

    async def get_by_id(self, user_id: uuid.UUID) -> Optional[User]:
        q = select(User).where(User.id == user_id)
        res = await self.session.execute(q)
        return res.scalar_one_or_none()

    async def upsert_by_email(self, email: str) -> Tuple[User, bool]:
        """Return the user owning ``email``, creating it if absent. Never fails on "already exists"."""
        user = await self.get_by_email(email)
        if user:
            return user, False

        user = User(email=email)
        self.session.add(user)
        try:
            await self.session.commit()
        except DBIntegrityError:
            # lost a concurrent insert for the same email
            await self.session.rollback()
            user = await self.get_by_email(email)
            if user is None:
                raise PersistenceError(f"user upsert failed for {email}")
            return user, False
        await self.session.refresh(user)
        return user, True


class RefreshTokenRepository:
    """Session records. Rows are only ever flipped to revoked, never deleted."""

    def __init__(self, session: AsyncSession):
        self.session = session

    def add(self, user_id: uuid.UUID, jti: str, hashed_token: str) -> RefreshToken:
        row = RefreshToken(user_id=user_id, jti=jti, hashed_token=hashed_token)
        self.session.add(row)
        return row

    async def get_active_by_jti(self, user_id: uuid.UUID, jti: str) -> Optional[RefreshToken]:
        q = select(RefreshToken).where(
            RefreshToken.user_id == user_id,
            RefreshToken.jti == jti,
            RefreshToken.revoked == False,  # noqa: E712
        )
        res = await self.session.execute(q)
        return res.scalars().first()

    async def revoke_if_active(self, token_id: uuid.UUID) -> bool:
        """Flip one row to revoked. False if it was already revoked by someone else."""
        q = (
            update(RefreshToken)
            .where(RefreshToken.id == token_id, RefreshToken.revoked == False)  # noqa: E712
            .values(revoked=True)
        )
        res = await self.session.execute(q)
        return res.rowcount == 1

    async def revoke_all_for_user(self, user_id: uuid.UUID) -> int:
        q = (
            update(RefreshToken)
            .where(RefreshToken.user_id == user_id, RefreshToken.revoked == False)  # noqa: E712
            .values(revoked=True)
        )
        res = await self.session.execute(q)
        return res.rowcount

    async def commit(self) -> None:
        await commit_or_raise(self.session)

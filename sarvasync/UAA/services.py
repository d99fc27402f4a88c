# sarvasync/UAA/services.py
import asyncio
from typing import Awaitable, Callable, Tuple
from urllib.parse import urlencode
import uuid

import structlog
from sqlmodel.ext.asyncio.session import AsyncSession

from .models import User
from .repository import UserRepository, RefreshTokenRepository
from . import utils
from sarvasync.config import get_settings
from sarvasync.errors import InvalidTokenError, InvalidOrRevokedError
from sarvasync.infrastructure.email import send_magic_link_email

logger = structlog.get_logger(__name__)

EmailSender = Callable[[str, str], Awaitable[None]]


def parse_user_id(raw) -> uuid.UUID:
    try:
        return uuid.UUID(str(raw))
    except (ValueError, TypeError, AttributeError) as e:
        raise InvalidTokenError("Invalid token payload.") from e


class AuthService:
    """Magic-link login plus the refresh-token rotation/revocation state machine."""

    def __init__(self, session: AsyncSession, email_sender: EmailSender = send_magic_link_email):
        self.session = session
        self.users = UserRepository(session)
        self.refresh_tokens = RefreshTokenRepository(session)
        self.email_sender = email_sender

    # --- magic link ---
    async def request_magic_link(self, email: str) -> None:
        email = email.strip().lower()
        token = utils.create_magic_link_token(email)
        link = f"{get_settings().SERVER_URL.rstrip('/')}/auth/magiclink/callback?{urlencode({'token': token})}"
        # DeliveryError propagates: the request fails rather than pretending the link was sent
        await self.email_sender(email, link)
        logger.info("magic_link_sent", email=email)

    async def redeem_magic_link(self, token: str) -> Tuple[User, utils.TokenPair]:
        email = await utils.consume_magic_link_token(token)
        user, created = await self.users.upsert_by_email(email)
        logger.info("magic_link_redeemed", user_id=str(user.id), email=user.email, created=created)
        tokens = await self.issue_session(user.id)
        return user, tokens

    # --- sessions ---
    async def _store_session(self, user_id: uuid.UUID, tokens: utils.TokenPair) -> None:
        # bcrypt runs off the event loop
        hashed = await asyncio.to_thread(utils.hash_token, tokens.refresh_token)
        self.refresh_tokens.add(user_id, tokens.refresh_jti, hashed)

    async def issue_session(self, user_id: uuid.UUID) -> utils.TokenPair:
        tokens = utils.generate_tokens(str(user_id))
        await self._store_session(user_id, tokens)
        await self.refresh_tokens.commit()
        logger.info("session_issued", user_id=str(user_id))
        return tokens

    async def refresh_session(self, raw_refresh_token: str) -> utils.TokenPair:
        payload = utils.verify_refresh_token(raw_refresh_token)
        user_id = parse_user_id(payload["userId"])

        row = await self.refresh_tokens.get_active_by_jti(user_id, payload["jti"])
        if row is None or not await asyncio.to_thread(utils.verify_token_hash, raw_refresh_token, row.hashed_token):
            # covers replay of an already-rotated token as well as forgeries
            logger.warning("refresh_token_not_found", user_id=str(user_id), jti=payload["jti"])
            raise InvalidOrRevokedError()

        if not await self.refresh_tokens.revoke_if_active(row.id):
            logger.warning("refresh_token_race_lost", user_id=str(user_id), token_id=str(row.id))
            await self.session.rollback()
            raise InvalidOrRevokedError()

        tokens = utils.generate_tokens(str(user_id))
        await self._store_session(user_id, tokens)
        await self.refresh_tokens.commit()
        logger.info("refresh_rotated", user_id=str(user_id), old_token_id=str(row.id))
        return tokens

    async def logout(self, user_id: uuid.UUID) -> int:
        revoked = await self.refresh_tokens.revoke_all_for_user(user_id)
        await self.refresh_tokens.commit()
        logger.info("logout_revoked_sessions", user_id=str(user_id), revoked_count=revoked)
        return revoked

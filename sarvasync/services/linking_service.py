# sarvasync/services/linking_service.py
from typing import Optional
import uuid

import structlog
from sqlmodel.ext.asyncio.session import AsyncSession

from sarvasync.UAA.models import User, utcnow
from sarvasync.UAA.repository import UserRepository
from sarvasync.UAA.utils import decode_oauth_state
from sarvasync.errors import EmailTakenError, InvalidStateError, MissingStateError, MissingUserError
from sarvasync.infrastructure.database import commit_or_raise, get_session
from sarvasync.infrastructure.linked_accounts_repo import LinkedAccountRepository
from sarvasync.infrastructure.provider import (
    ProviderClient, ProviderCredentials, ProviderProfile, ProviderTokens, TokenRefreshed,
)
from sarvasync.infrastructure.vault import CredentialVault, get_vault
from sarvasync.models.linked_account import LinkedAccount

logger = structlog.get_logger(__name__)


def user_id_from_state(state: Optional[str]) -> uuid.UUID:
    if not state:
        raise MissingStateError()
    data = decode_oauth_state(state)
    raw = data.get("userId")
    if not raw:
        raise MissingUserError()
    try:
        return uuid.UUID(str(raw))
    except ValueError as e:
        raise InvalidStateError() from e


class LinkedAccountTokenStore:
    """
    Single subscriber for provider token rotation on one linked account.
    Writes go through a session of their own, so a rotation is persisted even
    when the caller's unit of work later fails.
    """

    def __init__(self, account_id: uuid.UUID, vault: Optional[CredentialVault] = None, session_factory=get_session):
        self.account_id = account_id
        self.vault = vault or get_vault()
        self.session_factory = session_factory

    async def __call__(self, event: TokenRefreshed) -> None:
        access_enc = self.vault.encrypt(event.access_token)
        refresh_enc = self.vault.encrypt(event.refresh_token) if event.refresh_token else None
        async with self.session_factory() as session:
            account = await LinkedAccountRepository(session).update_tokens(
                self.account_id, access_enc, refresh_enc, event.expires_at
            )
        if account is None:
            logger.warning("token_refresh_account_missing", linked_account_id=str(self.account_id))
            return
        logger.info("linked_account_tokens_rotated", linked_account_id=str(self.account_id))


def build_credentials(account: LinkedAccount, vault: Optional[CredentialVault] = None) -> ProviderCredentials:
    """Decrypt the stored tokens and attach the rotation subscriber for this account."""
    vault = vault or get_vault()
    return ProviderCredentials(
        access_token=vault.decrypt(account.access_token),
        refresh_token=vault.decrypt(account.refresh_token) if account.refresh_token else None,
        expires_at=account.token_expires_at,
        on_refresh=LinkedAccountTokenStore(account.id, vault),
    )


class LinkingService:
    def __init__(self, session: AsyncSession, client: ProviderClient, vault: Optional[CredentialVault] = None):
        self.session = session
        self.client = client
        self.vault = vault or get_vault()
        self.users = UserRepository(session)
        self.accounts = LinkedAccountRepository(session)

    async def complete_callback(self, code: Optional[str], state: Optional[str]) -> LinkedAccount:
        user_id = user_id_from_state(state)
        if not code:
            raise InvalidStateError("Missing authorization code.")

        tokens = await self.client.exchange_code(code)
        profile = await self.client.fetch_profile(ProviderCredentials(
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            expires_at=tokens.expires_at,
        ))
        return await self.link_account(user_id, tokens, profile)

    async def link_account(self, user_id: uuid.UUID, tokens: ProviderTokens, profile: ProviderProfile) -> LinkedAccount:
        """
        Upsert the (user, provider) account and the owning user in one commit.
        connected_platforms moves only when no row existed before.
        """
        provider = self.client.provider
        try:
            user = await self.users.get_by_id(user_id)
            if user is None:
                if not profile.email:
                    raise MissingUserError("State user does not exist and the provider returned no email.")
                email = profile.email.strip().lower()
                if await self.users.get_by_email(email) is not None:
                    raise EmailTakenError(f"State user {user_id} does not exist and {email} belongs to another user.")
                # state carries a trusted id; the user row is born here
                user = User(id=user_id, email=email)
                self.session.add(user)
                await self.session.flush()
                logger.info("user_created_from_linking", user_id=str(user_id), provider=provider.value)

            account = await self.accounts.get_by_user_and_provider(user_id, provider)
            created = account is None
            if created:
                account = LinkedAccount(
                    user_id=user_id,
                    provider=provider.value,
                    provider_account_id=profile.account_id,
                    access_token="",
                )
                user.connected_platforms = (user.connected_platforms or 0) + 1

            account.provider_account_id = profile.account_id
            account.access_token = self.vault.encrypt(tokens.access_token)
            if tokens.refresh_token:
                account.refresh_token = self.vault.encrypt(tokens.refresh_token)
            account.token_expires_at = tokens.expires_at
            account.scope = tokens.scope
            account.display_name = profile.display_name
            account.username = profile.username
            account.follower_count = profile.follower_count
            account.platform_data = dict(profile.platform_data)
            account.is_active = True
            account.last_sync = utcnow()
            self.accounts.stage(account)

            if not user.name and profile.name:
                user.name = profile.name
            if not user.avatar_url and profile.avatar_url:
                user.avatar_url = profile.avatar_url
            user.updated_at = utcnow()
            self.session.add(user)

            await commit_or_raise(self.session)
        except Exception:
            await self.session.rollback()
            raise

        await self.session.refresh(account)
        logger.info(
            "linked_account_saved",
            user_id=str(user_id),
            provider=provider.value,
            linked_account_id=str(account.id),
            created=created,
        )
        return account

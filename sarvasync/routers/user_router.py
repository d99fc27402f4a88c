# sarvasync/routers/user_router.py
from fastapi import APIRouter, Depends
from sqlmodel.ext.asyncio.session import AsyncSession
import uuid

from ..dependencies.auth import get_current_user_id
from ..dependencies.db import get_session_dep
from ..infrastructure.linked_accounts_repo import LinkedAccountRepository
from ..UAA.schemas import ConnectedAccountsResponse

router = APIRouter(prefix="/user", tags=["user"])


@router.get("/connected-accounts", response_model=ConnectedAccountsResponse)
async def connected_accounts(
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session_dep),
):
    accounts = await LinkedAccountRepository(session).list_by_user(user_id)
    # tokens never leave the server
    return {
        "user": {
            "linkedAccounts": [
                {
                    "provider": a.provider,
                    "displayName": a.display_name,
                    "username": a.username,
                    "followerCount": a.follower_count,
                    "isActive": a.is_active,
                    "lastSync": a.last_sync,
                }
                for a in accounts
            ]
        }
    }

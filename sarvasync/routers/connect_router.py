# sarvasync/routers/connect_router.py
from typing import Optional
from urllib.parse import urlencode
import uuid

from fastapi import APIRouter, Depends, status
from fastapi.responses import PlainTextResponse, RedirectResponse
from sqlmodel.ext.asyncio.session import AsyncSession
import structlog

from ..config import get_settings
from ..dependencies.auth import get_current_user_id
from ..dependencies.db import get_session_dep
from ..errors import ResourceMissingError, SarvasyncError, StateIntegrityError
from ..infrastructure.google_client import get_google_client
from ..infrastructure.provider import ProviderClient
from ..services.linking_service import LinkingService
from ..UAA import utils
from ..UAA.schemas import AuthUrlResponse
from .oauth_pages import oauth_error_page, oauth_success_page

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/connect", tags=["connect"])

PROVIDER = "google"


def get_provider_client() -> ProviderClient:
    return get_google_client()


def _public_error(e: Exception) -> str:
    if not get_settings().is_production:
        return str(e)
    if isinstance(e, SarvasyncError):
        return e.public_message
    return "Failed to connect account."


@router.post("/google/initiate", response_model=AuthUrlResponse)
async def initiate(user_id: uuid.UUID = Depends(get_current_user_id)):
    state = utils.encode_oauth_state(str(user_id))
    auth_url = f"{get_settings().SERVER_URL.rstrip('/')}/connect/google?{urlencode({'state': state})}"
    logger.info("oauth_initiated", user_id=str(user_id), provider=PROVIDER)
    return {"authUrl": auth_url}


@router.get("/google")
async def authorize(state: Optional[str] = None, client: ProviderClient = Depends(get_provider_client)):
    if not state:
        return PlainTextResponse("Authentication required.", status_code=status.HTTP_401_UNAUTHORIZED)
    try:
        utils.decode_oauth_state(state)
    except StateIntegrityError:
        logger.warning("oauth_state_undecodable", provider=PROVIDER)
        return PlainTextResponse("Invalid authentication state.", status_code=status.HTTP_401_UNAUTHORIZED)
    return RedirectResponse(client.authorization_url(state), status_code=status.HTTP_302_FOUND)


@router.get("/google/callback")
async def callback(
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    session: AsyncSession = Depends(get_session_dep),
    client: ProviderClient = Depends(get_provider_client),
):
    if error:
        logger.warning("oauth_provider_denied", provider=PROVIDER, error=error)
        return oauth_error_page(PROVIDER, error)

    try:
        account = await LinkingService(session, client).complete_callback(code, state)
    except StateIntegrityError as e:
        logger.warning("oauth_state_rejected", provider=PROVIDER, reason=type(e).__name__)
        return oauth_error_page(PROVIDER, _public_error(e), status.HTTP_400_BAD_REQUEST)
    except ResourceMissingError as e:
        logger.warning("oauth_resource_missing", provider=PROVIDER, error=str(e))
        return oauth_error_page(PROVIDER, _public_error(e), status.HTTP_404_NOT_FOUND)
    except Exception as e:
        # the popup always gets a page back, never a JSON error
        logger.exception("oauth_callback_failed", provider=PROVIDER)
        return oauth_error_page(PROVIDER, _public_error(e), status.HTTP_500_INTERNAL_SERVER_ERROR)

    logger.info("oauth_linked", provider=PROVIDER, user_id=str(account.user_id), linked_account_id=str(account.id))
    return oauth_success_page(PROVIDER)

# sarvasync/routers/auth_router.py
from typing import Any, Dict, Optional
import uuid

from fastapi import APIRouter, Cookie, Depends, Response, status
from fastapi.responses import RedirectResponse
from sqlmodel.ext.asyncio.session import AsyncSession
from urllib.parse import urlencode
import structlog

from ..config import get_settings
from ..dependencies.auth import get_current_user_id, get_token_payload
from ..dependencies.db import get_session_dep
from ..errors import AuthenticationError
from ..infrastructure.email import send_magic_link_email
from ..UAA.schemas import AccessTokenResponse, MagicLinkRequest, MessageResponse, ProfileResponse
from ..UAA.services import AuthService, EmailSender

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/auth", tags=["auth"])

REFRESH_COOKIE = "refreshToken"
REFRESH_COOKIE_PATH = "/auth/refresh"


def get_email_sender() -> EmailSender:
    return send_magic_link_email


def get_auth_service(
    session: AsyncSession = Depends(get_session_dep),
    email_sender: EmailSender = Depends(get_email_sender),
) -> AuthService:
    return AuthService(session, email_sender=email_sender)


def set_refresh_cookie(response: Response, refresh_token: str) -> None:
    s = get_settings()
    response.set_cookie(
        key=REFRESH_COOKIE,
        value=refresh_token,
        httponly=True,
        secure=s.is_production,
        samesite="strict",
        path=REFRESH_COOKIE_PATH,
        max_age=s.REFRESH_TOKEN_EXPIRE_DAYS * 24 * 60 * 60,
    )


@router.post("/magiclink", response_model=MessageResponse)
async def request_magic_link(body: MagicLinkRequest, svc: AuthService = Depends(get_auth_service)):
    await svc.request_magic_link(body.email)
    return {"message": "Magic link sent! Please check your email."}


@router.get("/magiclink/callback")
async def magic_link_callback(token: Optional[str] = None, svc: AuthService = Depends(get_auth_service)):
    if not token:
        raise AuthenticationError("Magic link token is required.")
    _, tokens = await svc.redeem_magic_link(token)

    target = f"{get_settings().CORS_ORIGIN.rstrip('/')}/auth/magiclink/callback?{urlencode({'token': tokens.access_token})}"
    response = RedirectResponse(target, status_code=status.HTTP_302_FOUND)
    set_refresh_cookie(response, tokens.refresh_token)
    return response


@router.post("/refresh", response_model=AccessTokenResponse)
async def refresh(
    response: Response,
    refreshToken: Optional[str] = Cookie(None),
    svc: AuthService = Depends(get_auth_service),
):
    if not refreshToken:
        raise AuthenticationError("Refresh token not found.")
    tokens = await svc.refresh_session(refreshToken)
    set_refresh_cookie(response, tokens.refresh_token)
    return {"accessToken": tokens.access_token}


@router.post("/logout", response_model=MessageResponse)
async def logout(
    response: Response,
    user_id: uuid.UUID = Depends(get_current_user_id),
    svc: AuthService = Depends(get_auth_service),
):
    await svc.logout(user_id)
    response.delete_cookie(REFRESH_COOKIE, path=REFRESH_COOKIE_PATH)
    return {"message": "Logged out successfully."}


@router.get("/profile", response_model=ProfileResponse)
async def profile(payload: Dict[str, Any] = Depends(get_token_payload)):
    return {"message": "This is a protected route. You are authenticated.", "user": payload}

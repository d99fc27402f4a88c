# sarvasync/UAA/schemas.py
from pydantic import BaseModel, EmailStr, Field
from typing import List, Optional
from datetime import datetime


class MagicLinkRequest(BaseModel):
    email: EmailStr


class MessageResponse(BaseModel):
    message: str


class AccessTokenResponse(BaseModel):
    accessToken: str


class TokenPayload(BaseModel):
    userId: str
    type: str
    jti: str
    iat: int
    exp: int


class ProfileResponse(BaseModel):
    message: str
    user: TokenPayload


class AuthUrlResponse(BaseModel):
    authUrl: str


class LinkedAccountRead(BaseModel):
    provider: str
    displayName: Optional[str] = None
    username: Optional[str] = None
    followerCount: int = 0
    isActive: bool = True
    lastSync: Optional[datetime] = None


class ConnectedAccountsUser(BaseModel):
    linkedAccounts: List[LinkedAccountRead] = Field(default_factory=list)


class ConnectedAccountsResponse(BaseModel):
    user: ConnectedAccountsUser

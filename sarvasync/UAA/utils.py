# sarvasync/UAA/utils.py
import base64
import binascii
import json
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Dict, Any, Optional

import structlog
from jose import jwt, JWTError, ExpiredSignatureError
from passlib.context import CryptContext

from sarvasync.config import get_settings
from sarvasync.errors import (
    InvalidTokenError, TokenExpiredError, MissingIdentityError, InvalidStateError,
)
from sarvasync.infrastructure.redis_cache import get_redis

logger = structlog.get_logger(__name__)

ACCESS = "access"
REFRESH = "refresh"
MAGIC_LINK = "magic_link"


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    refresh_jti: str


# --- JWT helpers ---
def _now() -> datetime:
    return datetime.now(timezone.utc)


def _encode(claims: Dict[str, Any], secret: str, lifetime: timedelta, jti: Optional[str] = None) -> str:
    now = _now()
    payload = {
        **claims,
        "jti": jti or uuid.uuid4().hex,
        "iat": int(now.timestamp()),
        "exp": int((now + lifetime).timestamp()),
    }
    return jwt.encode(payload, secret, algorithm=get_settings().JWT_ALGORITHM)


def _decode(token: str, secret: str, expected_type: str) -> Dict[str, Any]:
    try:
        payload = jwt.decode(token, secret, algorithms=[get_settings().JWT_ALGORITHM])
    except ExpiredSignatureError as e:
        logger.info("token_expired", token_type=expected_type)
        raise TokenExpiredError() from e
    except JWTError as e:
        logger.warning("token_decode_failed", token_type=expected_type, error=str(e))
        raise InvalidTokenError() from e

    if payload.get("type") != expected_type:
        logger.warning("token_type_mismatch", expected=expected_type, got=payload.get("type"))
        raise InvalidTokenError()
    return payload


def create_access_token(user_id: str) -> str:
    s = get_settings()
    return _encode(
        {"userId": str(user_id), "type": ACCESS},
        s.ACCESS_TOKEN_SECRET,
        timedelta(minutes=s.ACCESS_TOKEN_EXPIRE_MINUTES),
    )


def create_refresh_token(user_id: str, jti: Optional[str] = None) -> str:
    s = get_settings()
    return _encode(
        {"userId": str(user_id), "type": REFRESH},
        s.REFRESH_TOKEN_SECRET,
        timedelta(days=s.REFRESH_TOKEN_EXPIRE_DAYS),
        jti=jti,
    )


def generate_tokens(user_id: str) -> TokenPair:
    # the refresh jti is the lookup key of the stored session row
    jti = uuid.uuid4().hex
    return TokenPair(
        access_token=create_access_token(user_id),
        refresh_token=create_refresh_token(user_id, jti=jti),
        refresh_jti=jti,
    )


def verify_access_token(token: str) -> Dict[str, Any]:
    payload = _decode(token, get_settings().ACCESS_TOKEN_SECRET, ACCESS)
    if not payload.get("userId"):
        raise InvalidTokenError("Invalid token payload.")
    return payload


def verify_refresh_token(token: str) -> Dict[str, Any]:
    payload = _decode(token, get_settings().REFRESH_TOKEN_SECRET, REFRESH)
    if not payload.get("userId") or not payload.get("jti"):
        raise InvalidTokenError("Invalid token payload.")
    return payload


# --- refresh token hashing ---
@lru_cache
def _token_context() -> CryptContext:
    # bcrypt_sha256 pre-hashes, so secrets longer than bcrypt's 72 bytes are compared in full
    return CryptContext(
        schemes=["bcrypt_sha256"],
        bcrypt_sha256__rounds=get_settings().REFRESH_TOKEN_HASH_ROUNDS,
    )


def hash_token(raw: str) -> str:
    return _token_context().hash(raw)


def verify_token_hash(raw: str, hashed: str) -> bool:
    try:
        return _token_context().verify(raw, hashed)
    except ValueError as e:
        logger.warning("token_hash_verify_failed", error=str(e))
        return False


# --- magic link tokens ---
def create_magic_link_token(email: str) -> str:
    s = get_settings()
    return _encode(
        {"email": email, "type": MAGIC_LINK},
        s.MAGIC_LINK_SECRET,
        timedelta(minutes=s.MAGIC_LINK_EXPIRE_MINUTES),
    )


async def consume_magic_link_token(token: str) -> str:
    """Verify a magic link token, claim it for single use and return its email."""
    payload = _decode(token, get_settings().MAGIC_LINK_SECRET, MAGIC_LINK)

    email = payload.get("email")
    if not email or not isinstance(email, str) or "@" not in email:
        logger.warning("magic_link_missing_email", jti=payload.get("jti"))
        raise MissingIdentityError()

    jti = payload.get("jti")
    if not jti:
        raise InvalidTokenError()
    ttl = max(1, int(payload["exp"]) - int(time.time()))
    claimed = await get_redis().set(f"ml:used:{jti}", email, nx=True, ex=ttl)
    if not claimed:
        logger.warning("magic_link_reused", jti=jti)
        raise InvalidTokenError("Magic link has already been used.")
    return email.strip().lower()


# --- OAuth state ---
# The state is an unsigned base64 JSON blob. Whoever holds a state string can
# link an account to the user id inside it; it is not a MAC'd token.
def encode_oauth_state(user_id: str, timestamp_ms: Optional[int] = None) -> str:
    payload = {"userId": str(user_id), "timestamp": timestamp_ms or int(time.time() * 1000)}
    return base64.urlsafe_b64encode(json.dumps(payload).encode()).decode()


def decode_oauth_state(state: str) -> Dict[str, Any]:
    try:
        padded = state + "=" * (-len(state) % 4)
        data = json.loads(base64.urlsafe_b64decode(padded.encode()).decode())
    except (binascii.Error, UnicodeDecodeError, ValueError) as e:
        raise InvalidStateError() from e
    if not isinstance(data, dict):
        raise InvalidStateError()
    return data

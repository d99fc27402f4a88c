# sarvasync/dependencies/auth.py
from typing import Any, Dict, Optional
import uuid

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from sarvasync.errors import AuthenticationError
from sarvasync.UAA.services import parse_user_id
from sarvasync.UAA.utils import verify_access_token

bearer_scheme = HTTPBearer(auto_error=False)


async def get_token_payload(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Dict[str, Any]:
    """Stateless access-token check: signature and expiry only, no session lookup."""
    if credentials is None or credentials.scheme.lower() != "bearer" or not credentials.credentials:
        raise AuthenticationError("Unauthorized: No token provided.")
    return verify_access_token(credentials.credentials)


async def get_current_user_id(payload: Dict[str, Any] = Depends(get_token_payload)) -> uuid.UUID:
    return parse_user_id(payload["userId"])

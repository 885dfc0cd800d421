"""
Caller identity from bearer tokens issued by the identity provider.

This service never authenticates users itself: it only verifies the signature
of an access token and turns its claims into a Principal. Missing or invalid
tokens fail closed with AuthenticationRequired.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from eventreg.core.config import get_settings
from eventreg.core.exceptions import AuthenticationRequired
from eventreg.core.logging import get_logger

logger = get_logger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Principal:
    id: int
    display_name: Optional[str] = None
    email: Optional[str] = None


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Sign a token the way the identity provider does. Used by tooling and tests."""
    settings = get_settings()
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode["exp"] = expire
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> Principal:
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        user_id = int(payload["sub"])
    except (jwt.PyJWTError, KeyError, TypeError, ValueError) as e:
        logger.warning("token_rejected", error=str(e))
        raise AuthenticationRequired("Invalid or expired access token")

    return Principal(
        id=user_id,
        display_name=payload.get("name"),
        email=payload.get("email"),
    )


async def get_current_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Principal:
    if credentials is None or not credentials.credentials:
        raise AuthenticationRequired()
    return decode_access_token(credentials.credentials)

# chartier/security.py
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from chartier.core.settings import settings
from chartier.database import get_async_db
from chartier.errors import Unauthorized
from chartier.models_auth import User

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
# IMPORTANT: auto_error=False so we can return a clean 401 instead of framework 403
bearer_scheme = HTTPBearer(auto_error=False)


# -------- Passwords --------
def hash_password(plain: str) -> str:
    return pwd_context.hash(plain)


def verify_password(plain: str, hashed: Optional[str]) -> bool:
    if not hashed:
        return False
    try:
        return pwd_context.verify(plain, hashed)
    except ValueError:
        return False


# -------- Tokens --------
def create_access_token(*, user_id: uuid.UUID, email: str, minutes: Optional[int] = None) -> str:
    now = datetime.now(timezone.utc)
    exp = now + timedelta(minutes=minutes or settings.access_token_expire_minutes)
    payload = {
        "sub": str(user_id),
        "email": email,
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
        "type": "access",
    }
    return jwt.encode(payload, settings.auth_secret, algorithm=ALGORITHM)


def decode_access_token(token: str) -> Dict[str, Any]:
    try:
        data = jwt.decode(token, settings.auth_secret, algorithms=[ALGORITHM])
    except JWTError:
        raise Unauthorized("Invalid or expired token") from None
    if not data.get("sub") or not data.get("email"):
        raise Unauthorized("Invalid token")
    return data


# -------- Current user --------
async def resolve_session_user(session: AsyncSession, sub: str, email: str) -> User:
    """
    Token subject -> User. If the id no longer exists (stale session, account
    recreated) fall back to the email before giving up.
    """
    user: Optional[User] = None
    try:
        user = await session.get(User, uuid.UUID(sub))
    except ValueError:
        user = None

    if user is None:
        logger.warning("Session user %s not found, retrying by email", sub)
        user = (await session.execute(select(User).where(User.email == email))).scalar_one_or_none()
        if user is None:
            raise Unauthorized("User session invalid")
    return user


async def get_current_user(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    session: AsyncSession = Depends(get_async_db),
) -> User:
    if not creds or not creds.scheme or creds.scheme.lower() != "bearer":
        raise Unauthorized("Missing bearer token")
    data = decode_access_token(creds.credentials)
    return await resolve_session_user(session, data["sub"], data["email"])


async def optional_user(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    session: AsyncSession = Depends(get_async_db),
) -> Optional[User]:
    """Reads work anonymously; a bad token just means no personalisation."""
    if not creds:
        return None
    try:
        return await get_current_user(creds, session)
    except Unauthorized:
        return None


# Alias that route modules import
require_user = get_current_user

# chartier/services/users.py
from __future__ import annotations

import logging
import secrets
import string
from typing import Optional

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from chartier.errors import Conflict, InvalidInput, StoreFailure, Unauthorized
from chartier.models_auth import User, utcnow
from chartier.security import hash_password, verify_password

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8
_BASE36 = string.digits + string.ascii_lowercase


async def _user_by_email(session: AsyncSession, email: str) -> Optional[User]:
    res = await session.execute(select(User).where(User.email == email))
    return res.scalar_one_or_none()


async def _raise_if_taken(session: AsyncSession, email: str, username: str) -> None:
    rows = (
        await session.execute(
            select(User.email, User.username).where(or_(User.email == email, User.username == username))
        )
    ).all()
    # email wins when both collide
    if any(r.email == email for r in rows):
        raise Conflict("Email already registered", field="email")
    if any(r.username == username for r in rows):
        raise Conflict("Username already taken", field="username")


async def register_user(
    session: AsyncSession,
    *,
    email: Optional[str],
    password: Optional[str],
    username: Optional[str],
    name: Optional[str] = None,
) -> User:
    email = (email or "").strip().lower()
    username = (username or "").strip()
    if not email or not password or not username:
        raise InvalidInput("Email, password, and username are required")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise InvalidInput(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

    await _raise_if_taken(session, email, username)

    user = User(
        email=email,
        username=username,
        name=(name or "").strip() or None,
        password_hash=hash_password(password),
        created_at=utcnow(),
    )
    session.add(user)
    try:
        await session.commit()
    except IntegrityError:
        # lost a race with a concurrent registration; report which field
        await session.rollback()
        await _raise_if_taken(session, email, username)
        raise StoreFailure()
    await session.refresh(user)
    logger.info("Registered user %s (%s)", user.username, user.id)
    return user


async def authenticate(session: AsyncSession, email: str, password: str) -> User:
    user = await _user_by_email(session, (email or "").strip().lower())
    if user is None or not verify_password(password, user.password_hash):
        raise Unauthorized("Invalid credentials")
    return user


def _username_candidate(email: str) -> str:
    local = email.split("@", 1)[0] or "user"
    return local[:56] + "".join(secrets.choice(_BASE36) for _ in range(4))


async def sync_oauth_profile(
    session: AsyncSession,
    *,
    email: str,
    name: Optional[str] = None,
    image: Optional[str] = None,
    attempts: int = 5,
) -> User:
    """
    First OAuth sign-in creates the account with a generated username;
    later sign-ins refresh name/image and mark the email verified.
    Called by the OAuth provider callback once the provider has verified the email.
    """
    email = (email or "").strip().lower()
    if not email:
        raise InvalidInput("Email is required")

    for _ in range(attempts):
        existing = await _user_by_email(session, email)
        if existing is not None:
            existing.name = name or existing.name
            existing.image = image or existing.image
            existing.email_verified_at = utcnow()
            await session.commit()
            await session.refresh(existing)
            return existing

        user = User(
            email=email,
            name=name,
            image=image,
            username=_username_candidate(email),
            email_verified_at=utcnow(),
            created_at=utcnow(),
        )
        session.add(user)
        try:
            await session.commit()
        except IntegrityError:
            # username collision or a parallel first sign-in; try again
            await session.rollback()
            continue
        await session.refresh(user)
        logger.info("Created OAuth user %s for %s", user.username, email)
        return user

    raise StoreFailure("Could not create account")

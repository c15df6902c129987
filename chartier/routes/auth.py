# chartier/routes/auth.py
from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from chartier.database import get_async_db
from chartier.models_auth import User
from chartier.schemas import LoginIn, RegisterIn, TokenOut, UserOut
from chartier.security import create_access_token, get_current_user
from chartier.services.users import authenticate, register_user

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", response_model=UserOut, status_code=201, summary="Register")
async def register(payload: RegisterIn, session: AsyncSession = Depends(get_async_db)) -> UserOut:
    user = await register_user(
        session,
        email=str(payload.email),
        password=payload.password,
        username=payload.username,
        name=payload.name,
    )
    return UserOut.of(user)


@router.post("/login", response_model=TokenOut, summary="Login")
async def login(payload: LoginIn, session: AsyncSession = Depends(get_async_db)) -> TokenOut:
    user = await authenticate(session, str(payload.email), payload.password)
    token = create_access_token(user_id=user.id, email=user.email)
    return TokenOut(access_token=token, user_id=str(user.id), email=user.email)


@router.get("/me", response_model=UserOut, summary="Me")
async def me(current: User = Depends(get_current_user)) -> UserOut:
    return UserOut.of(current)

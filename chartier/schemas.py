# chartier/schemas.py
from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


# =========================
# Auth
# =========================

class RegisterIn(BaseModel):
    """Length rules live in the user service so every caller gets the same message."""
    email: EmailStr
    password: str = Field(max_length=128)
    username: str = Field(max_length=64)
    name: Optional[str] = Field(default=None, max_length=120)


class LoginIn(BaseModel):
    email: EmailStr
    password: str = Field(max_length=128)


class TokenOut(BaseModel):
    access_token: str
    token_type: Literal["bearer"] = "bearer"
    user_id: str
    email: EmailStr


class UserOut(BaseModel):
    id: str
    email: EmailStr
    username: str
    name: Optional[str] = None
    image: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def of(cls, user) -> "UserOut":
        return cls(
            id=str(user.id),
            email=user.email,
            username=user.username,
            name=user.name,
            image=user.image,
            created_at=user.created_at,
        )


# =========================
# Reviews
# =========================

class RatingIn(BaseModel):
    tier: Optional[str] = None
    comment: Optional[str] = Field(default=None, max_length=2000)

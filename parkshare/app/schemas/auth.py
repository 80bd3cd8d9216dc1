from __future__ import annotations

from pydantic import BaseModel, EmailStr, Field


class SignInBody(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)


class SignUpBody(SignInBody):
    full_name: str = Field(min_length=1)


class RefreshBody(BaseModel):
    refresh_token: str

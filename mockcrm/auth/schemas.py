from __future__ import annotations

from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field, StringConstraints


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8)
    # Passwords are taken verbatim; only the display name is trimmed.
    name: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=255)]


class UserProfile(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    account_id: int
    email: str | None
    display_name: str
    role: Literal["admin", "sales_rep"]
    status: Literal["invited", "active"]


class AuthResponse(BaseModel):
    """Token fields are present only for bearer-token strategies."""

    access_token: str | None = None
    token_type: str | None = None
    expires_in: int | None = None
    user: UserProfile

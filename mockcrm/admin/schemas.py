from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field, StringConstraints


StageName = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=128)]
DisplayName = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=255)]
RoleName = Literal["admin", "sales_rep"]


class StageCreate(BaseModel):
    name: StageName
    description: str | None = None
    order_index: int = Field(default=0, ge=0)


class StageUpdate(BaseModel):
    name: StageName | None = None
    description: str | None = None
    order_index: int | None = Field(default=None, ge=0)


class StageRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    account_id: int
    name: str
    description: str | None
    order_index: int
    created_at: datetime
    updated_at: datetime


class UserInvite(BaseModel):
    email: EmailStr
    display_name: DisplayName
    role: RoleName = "sales_rep"


class UserUpdate(BaseModel):
    email: EmailStr | None = None
    display_name: DisplayName | None = None
    role: RoleName | None = None


class UserRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    account_id: int
    email: str | None
    display_name: str
    role: RoleName
    status: Literal["invited", "active"]
    created_at: datetime
    updated_at: datetime

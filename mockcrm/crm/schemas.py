from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field, StringConstraints


Name = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
DealOutcome = Literal["won", "lost"]
TaskStatus = Literal["todo", "in_progress", "done"]


class DealCreate(BaseModel):
    name: Name
    amount: Decimal = Field(default=Decimal("0"), ge=0, max_digits=12, decimal_places=2)
    customer_id: int | None = None
    stage_id: int | None = None
    outcome: DealOutcome | None = None
    # Honoured for admins only; sales reps always own what they create.
    user_id: int | None = None


class DealUpdate(BaseModel):
    name: Name | None = None
    amount: Decimal | None = Field(default=None, ge=0, max_digits=12, decimal_places=2)
    customer_id: int | None = None
    stage_id: int | None = None
    outcome: DealOutcome | None = None
    user_id: int | None = None


class DealRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    account_id: int
    user_id: int
    customer_id: int | None
    stage_id: int | None
    name: str
    amount: Decimal
    outcome: DealOutcome | None
    created_at: datetime
    updated_at: datetime


class CustomerCreate(BaseModel):
    name: Name
    email: EmailStr | None = None
    phone: str | None = None


class CustomerUpdate(BaseModel):
    name: Name | None = None
    email: EmailStr | None = None
    phone: str | None = None


class CustomerRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    account_id: int
    name: str
    email: str | None
    phone: str | None
    created_at: datetime
    updated_at: datetime


class TaskCreate(BaseModel):
    deal_id: int
    name: Name
    status: TaskStatus = "todo"
    due_date: date | None = None
    user_id: int | None = None


class TaskUpdate(BaseModel):
    name: Name | None = None
    status: TaskStatus | None = None
    due_date: date | None = None
    user_id: int | None = None


class TaskRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    deal_id: int
    user_id: int | None
    name: str
    status: TaskStatus
    due_date: date | None
    created_at: datetime
    updated_at: datetime

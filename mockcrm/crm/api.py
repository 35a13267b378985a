from __future__ import annotations

from typing import Any, Literal

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from mockcrm.core.auth import get_authorization_engine, get_current_principal
from mockcrm.core.database import get_db
from mockcrm.crm.schemas import (
    CustomerCreate,
    CustomerRead,
    CustomerUpdate,
    DealCreate,
    DealRead,
    DealUpdate,
    TaskCreate,
    TaskRead,
    TaskStatus,
    TaskUpdate,
)
from mockcrm.crm.service import customer_service, deal_service, task_service
from mockcrm.platform.security import AuthorizationEngine, Principal

deals_router = APIRouter(prefix="/api/deals", tags=["crm.deals"])
customers_router = APIRouter(prefix="/api/customers", tags=["crm.customers"])
tasks_router = APIRouter(prefix="/api/tasks", tags=["crm.tasks"])


@deals_router.get("", response_model=list[DealRead])
def list_deals(
    stage_id: int | None = Query(default=None),
    outcome: Literal["open", "won", "lost"] | None = Query(default=None),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    authz: AuthorizationEngine = Depends(get_authorization_engine),
) -> list[DealRead]:
    return deal_service.list_deals(db, principal, authz, stage_id=stage_id, outcome=outcome)


@deals_router.get("/{deal_id}", response_model=DealRead)
def get_deal(
    deal_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    authz: AuthorizationEngine = Depends(get_authorization_engine),
) -> DealRead:
    return deal_service.get_deal(db, principal, authz, deal_id)


@deals_router.post("", response_model=DealRead, status_code=status.HTTP_201_CREATED)
def create_deal(
    dto: DealCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    authz: AuthorizationEngine = Depends(get_authorization_engine),
) -> DealRead:
    return deal_service.create_deal(db, principal, authz, dto)


@deals_router.put("/{deal_id}", response_model=DealRead)
def update_deal(
    deal_id: int,
    dto: DealUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    authz: AuthorizationEngine = Depends(get_authorization_engine),
) -> DealRead:
    return deal_service.update_deal(db, principal, authz, deal_id, dto)


@deals_router.delete("/{deal_id}", response_model=None, status_code=status.HTTP_200_OK)
def delete_deal(
    deal_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    authz: AuthorizationEngine = Depends(get_authorization_engine),
) -> Any:
    deal_service.delete_deal(db, principal, authz, deal_id)
    return {"status": "deleted"}


@customers_router.get("", response_model=list[CustomerRead])
def list_customers(
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    authz: AuthorizationEngine = Depends(get_authorization_engine),
) -> list[CustomerRead]:
    return customer_service.list_customers(db, principal, authz)


@customers_router.get("/{customer_id}", response_model=CustomerRead)
def get_customer(
    customer_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    authz: AuthorizationEngine = Depends(get_authorization_engine),
) -> CustomerRead:
    return customer_service.get_customer(db, principal, authz, customer_id)


@customers_router.post("", response_model=CustomerRead, status_code=status.HTTP_201_CREATED)
def create_customer(
    dto: CustomerCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    authz: AuthorizationEngine = Depends(get_authorization_engine),
) -> CustomerRead:
    return customer_service.create_customer(db, principal, authz, dto)


@customers_router.put("/{customer_id}", response_model=CustomerRead)
def update_customer(
    customer_id: int,
    dto: CustomerUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    authz: AuthorizationEngine = Depends(get_authorization_engine),
) -> CustomerRead:
    return customer_service.update_customer(db, principal, authz, customer_id, dto)


@customers_router.delete("/{customer_id}", response_model=None, status_code=status.HTTP_200_OK)
def delete_customer(
    customer_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    authz: AuthorizationEngine = Depends(get_authorization_engine),
) -> Any:
    customer_service.delete_customer(db, principal, authz, customer_id)
    return {"status": "deleted"}


@tasks_router.get("", response_model=list[TaskRead])
def list_tasks(
    task_status: TaskStatus | None = Query(default=None, alias="status"),
    deal_id: int | None = Query(default=None),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    authz: AuthorizationEngine = Depends(get_authorization_engine),
) -> list[TaskRead]:
    return task_service.list_tasks(db, principal, authz, status=task_status, deal_id=deal_id)


@tasks_router.get("/{task_id}", response_model=TaskRead)
def get_task(
    task_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    authz: AuthorizationEngine = Depends(get_authorization_engine),
) -> TaskRead:
    return task_service.get_task(db, principal, authz, task_id)


@tasks_router.post("", response_model=TaskRead, status_code=status.HTTP_201_CREATED)
def create_task(
    dto: TaskCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    authz: AuthorizationEngine = Depends(get_authorization_engine),
) -> TaskRead:
    return task_service.create_task(db, principal, authz, dto)


@tasks_router.put("/{task_id}", response_model=TaskRead)
def update_task(
    task_id: int,
    dto: TaskUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    authz: AuthorizationEngine = Depends(get_authorization_engine),
) -> TaskRead:
    return task_service.update_task(db, principal, authz, task_id, dto)


@tasks_router.delete("/{task_id}", response_model=None, status_code=status.HTTP_200_OK)
def delete_task(
    task_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    authz: AuthorizationEngine = Depends(get_authorization_engine),
) -> Any:
    task_service.delete_task(db, principal, authz, task_id)
    return {"status": "deleted"}

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from mockcrm.admin.schemas import StageCreate, StageRead, StageUpdate, UserInvite, UserRead, UserUpdate
from mockcrm.admin.service import stage_service, user_admin_service
from mockcrm.core.auth import get_authorization_engine, get_current_principal
from mockcrm.core.database import get_db
from mockcrm.platform.security import AuthorizationEngine, Principal

router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.get("/stages", response_model=list[StageRead])
def list_stages(
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    authz: AuthorizationEngine = Depends(get_authorization_engine),
) -> list[StageRead]:
    return stage_service.list_stages(db, principal, authz)


@router.post("/stages", response_model=StageRead, status_code=status.HTTP_201_CREATED)
def create_stage(
    dto: StageCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    authz: AuthorizationEngine = Depends(get_authorization_engine),
) -> StageRead:
    return stage_service.create_stage(db, principal, authz, dto)


@router.put("/stages/{stage_id}", response_model=StageRead)
def update_stage(
    stage_id: int,
    dto: StageUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    authz: AuthorizationEngine = Depends(get_authorization_engine),
) -> StageRead:
    return stage_service.update_stage(db, principal, authz, stage_id, dto)


@router.delete("/stages/{stage_id}", response_model=None, status_code=status.HTTP_200_OK)
def delete_stage(
    stage_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    authz: AuthorizationEngine = Depends(get_authorization_engine),
) -> Any:
    stage_service.delete_stage(db, principal, authz, stage_id)
    return {"status": "deleted"}


@router.get("/users", response_model=list[UserRead])
def list_users(
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    authz: AuthorizationEngine = Depends(get_authorization_engine),
) -> list[UserRead]:
    return user_admin_service.list_users(db, principal, authz)


@router.post("/users", response_model=UserRead, status_code=status.HTTP_201_CREATED)
def invite_user(
    dto: UserInvite,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    authz: AuthorizationEngine = Depends(get_authorization_engine),
) -> UserRead:
    return user_admin_service.invite_user(db, principal, authz, dto)


@router.put("/users/{user_id}", response_model=UserRead)
def update_user(
    user_id: int,
    dto: UserUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    authz: AuthorizationEngine = Depends(get_authorization_engine),
) -> UserRead:
    return user_admin_service.update_user(db, principal, authz, user_id, dto)


@router.delete("/users/{user_id}", response_model=None, status_code=status.HTTP_200_OK)
def delete_user(
    user_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    authz: AuthorizationEngine = Depends(get_authorization_engine),
) -> Any:
    user_admin_service.delete_user(db, principal, authz, user_id)
    return {"status": "deleted"}

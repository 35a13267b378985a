from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.orm import Session

from mockcrm.auth.schemas import AuthResponse, LoginRequest, RegisterRequest, UserProfile
from mockcrm.auth.service import auth_service
from mockcrm.core.auth import Authenticator, get_authenticator, get_current_principal
from mockcrm.core.database import get_db
from mockcrm.platform.security import Principal

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/login", response_model=AuthResponse, response_model_exclude_none=True)
def login(
    dto: LoginRequest,
    response: Response,
    db: Session = Depends(get_db),
    authenticator: Authenticator = Depends(get_authenticator),
) -> AuthResponse:
    return auth_service.login(db, authenticator, response, dto)


@router.post("/register", response_model=AuthResponse, response_model_exclude_none=True)
def register(
    dto: RegisterRequest,
    response: Response,
    db: Session = Depends(get_db),
    authenticator: Authenticator = Depends(get_authenticator),
) -> AuthResponse:
    return auth_service.register(db, authenticator, response, dto)


@router.get("/profile", response_model=UserProfile)
def profile(
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
) -> UserProfile:
    return auth_service.profile(db, principal)


@router.post("/logout")
def logout(
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    authenticator: Authenticator = Depends(get_authenticator),
) -> dict[str, str]:
    auth_service.logout(db, authenticator, request, response)
    return {"status": "logged_out"}

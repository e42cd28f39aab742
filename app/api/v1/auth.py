from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.core.security import authenticate, get_current_user
from app.db import models
from app.db.session import get_db
from app.services.principals import create_principal

router = APIRouter(tags=["Auth"])


class LoginRequest(BaseModel):
    email: str
    password: str


class RegisterRequest(BaseModel):
    name: str
    email: str
    password: str
    role: str = models.ROLE_USER
    tenant_id: Optional[str] = None


def serialize_principal(user: models.User) -> dict:
    return {
        "id": user.id,
        "tenant_id": user.tenant_id,
        "name": user.name,
        "email": user.email,
        "role": user.role,
        "created_at": user.created_at,
        "last_login_at": user.last_login_at,
    }


@router.post("/auth/login", summary="Login JSON (frontend)")
def login(payload: LoginRequest, db: Session = Depends(get_db)):
    """
    Uso tipico via frontend/script JSON:
    - POST /api/auth/login
    - body: {"email": "...", "password": "..."}
    """
    user, token = authenticate(db, payload.email, payload.password)
    return {"token": token, "token_type": "bearer", "user": serialize_principal(user)}


@router.post("/auth/register", status_code=status.HTTP_201_CREATED)
def register(
    payload: RegisterRequest,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    user = create_principal(
        db,
        current_user,
        name=payload.name,
        email=payload.email,
        password=payload.password,
        role=payload.role,
        tenant_id=payload.tenant_id,
    )
    return serialize_principal(user)


@router.get("/me")
def get_me(current_user: models.User = Depends(get_current_user)):
    tenant = current_user.tenant
    return {
        "user": serialize_principal(current_user),
        "tenant": {"id": tenant.id, "name": tenant.name, "tax_id": tenant.tax_id} if tenant else None,
    }

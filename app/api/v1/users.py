import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.api.v1.auth import serialize_principal
from app.core.authorization import Action, Target, enforce, scope_query
from app.core.errors import NotFound
from app.core.security import get_current_user, get_password_hash, normalize_email
from app.db import models
from app.db.session import commit_or_rollback, get_db
from app.services.principals import ensure_email_available, validate_profile, validate_role_for_tenant

router = APIRouter(tags=["Usuarios"])
logger = logging.getLogger("cotacao.users")


class UserUpdate(BaseModel):
    name: str | None = None
    email: str | None = None
    password: str | None = None
    role: str | None = None


def _get_user_or_404(db: Session, user_id: str) -> models.User:
    user = db.query(models.User).filter(models.User.id == user_id).first()
    if not user:
        raise NotFound("Usuario nao encontrado")
    return user


@router.get("/users")
def list_users(
    q: str | None = None,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    query = scope_query(db.query(models.User), current_user, models.User.tenant_id)
    if q:
        like = f"%{q.lower()}%"
        query = query.filter(or_(models.User.name.ilike(like), models.User.email.ilike(like)))
    users = query.order_by(models.User.created_at.desc()).all()
    return [serialize_principal(user) for user in users]


@router.patch("/users/{user_id}")
def update_user(
    user_id: str,
    payload: UserUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    user = _get_user_or_404(db, user_id)
    role_change = payload.role if payload.role is not None and payload.role != user.role else None
    enforce(current_user, Action.UPDATE, Target.principal(user, role=role_change))
    validate_profile(payload.name, payload.email)

    if payload.role is not None:
        validate_role_for_tenant(payload.role, user.tenant_id)
        user.role = payload.role
    if payload.name is not None:
        user.name = payload.name.strip()
    if payload.email is not None:
        email = normalize_email(payload.email)
        ensure_email_available(db, email, exclude_user_id=user.id)
        user.email = email
    if payload.password:
        user.password_hash = get_password_hash(payload.password)

    commit_or_rollback(db)
    db.refresh(user)
    logger.info("usuario atualizado id=%s by=%s", user.id, current_user.id)
    return serialize_principal(user)


@router.delete("/users/{user_id}")
def delete_user(
    user_id: str,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    user = _get_user_or_404(db, user_id)
    enforce(current_user, Action.DELETE, Target.principal(user))
    db.delete(user)
    commit_or_rollback(db)
    logger.info("usuario removido id=%s by=%s", user_id, current_user.id)
    return {"message": "Usuario removido com sucesso"}

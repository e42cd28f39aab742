import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.authorization import Action, Entity, Target, enforce
from app.core.errors import Conflict, NotFound, PersistenceError, ValidationError
from app.core.security import get_password_hash, normalize_email
from app.db import models

logger = logging.getLogger("cotacao.users")


def validate_role_for_tenant(role: str, tenant_id: Optional[str]) -> None:
    if role not in models.ROLES:
        allowed = ", ".join(sorted(models.ROLES))
        raise ValidationError.single("role", f"Perfil invalido. Use: {allowed}")
    if role == models.ROLE_ROOT and tenant_id is not None:
        raise ValidationError.single("tenant_id", "Usuario root nao pertence a um municipio")
    if role != models.ROLE_ROOT and tenant_id is None:
        raise ValidationError.single("tenant_id", "Municipio obrigatorio para este perfil")


def validate_profile(name: Optional[str], email: Optional[str]) -> None:
    errors = []
    if name is not None and len(name.strip()) < 2:
        errors.append({"field": "name", "message": "Nome deve ter ao menos 2 caracteres"})
    if email is not None and "@" not in normalize_email(email):
        errors.append({"field": "email", "message": "Email invalido"})
    if errors:
        raise ValidationError(errors)


def ensure_email_available(db: Session, email: str, exclude_user_id: Optional[str] = None) -> None:
    query = db.query(models.User).filter(models.User.email == email)
    if exclude_user_id:
        query = query.filter(models.User.id != exclude_user_id)
    if query.first():
        raise Conflict("Email ja esta em uso")


def create_principal(
    db: Session,
    actor: Optional[models.User],
    name: str,
    email: str,
    password: str,
    role: str,
    tenant_id: Optional[str] = None,
) -> models.User:
    """
    Cria um usuario. Sem actor (bootstrap/seed) nenhuma politica e aplicada;
    atores nao-root sempre criam no proprio municipio.
    """
    if actor is not None and actor.role != models.ROLE_ROOT:
        tenant_id = actor.tenant_id
    if actor is not None:
        enforce(actor, Action.CREATE, Target(Entity.PRINCIPAL, tenant_id=tenant_id, role=role))

    validate_profile(name, email)
    validate_role_for_tenant(role, tenant_id)
    if tenant_id is not None and not db.query(models.Tenant).filter(models.Tenant.id == tenant_id).first():
        raise NotFound("Municipio nao encontrado")

    normalized = normalize_email(email)
    ensure_email_available(db, normalized)
    user = models.User(
        tenant_id=tenant_id,
        name=name.strip(),
        email=normalized,
        password_hash=get_password_hash(password),
        role=role,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise Conflict("Email ja esta em uso") from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Falha ao persistir alteracoes")
        raise PersistenceError() from exc
    db.refresh(user)
    logger.info("usuario criado id=%s role=%s tenant_id=%s", user.id, user.role, user.tenant_id)
    return user

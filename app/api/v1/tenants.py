import logging

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.authorization import Action, Entity, Target, enforce
from app.core.errors import Conflict, NotFound, PersistenceError, ValidationError
from app.core.security import get_current_user
from app.db import models
from app.db.session import commit_or_rollback, get_db

router = APIRouter(tags=["Municipios"])
logger = logging.getLogger("cotacao.tenants")

TAX_ID_MAX_LENGTH = 18


class TenantCreate(BaseModel):
    name: str
    tax_id: str


class TenantUpdate(BaseModel):
    name: str | None = None
    tax_id: str | None = None


def _serialize_tenant(tenant: models.Tenant) -> dict:
    return {
        "id": tenant.id,
        "name": tenant.name,
        "tax_id": tenant.tax_id,
        "created_at": tenant.created_at,
    }


def _validate(name: str | None, tax_id: str | None) -> None:
    errors = []
    if name is not None and not name.strip():
        errors.append({"field": "name", "message": "Nome obrigatorio"})
    if tax_id is not None:
        cleaned = tax_id.strip()
        if not cleaned:
            errors.append({"field": "tax_id", "message": "CNPJ obrigatorio"})
        elif len(cleaned) > TAX_ID_MAX_LENGTH:
            errors.append({"field": "tax_id", "message": "CNPJ invalido"})
    if errors:
        raise ValidationError(errors)


def _ensure_tax_id_available(db: Session, tax_id: str, exclude_id: str | None = None) -> None:
    query = db.query(models.Tenant).filter(models.Tenant.tax_id == tax_id)
    if exclude_id:
        query = query.filter(models.Tenant.id != exclude_id)
    if query.first():
        raise Conflict("CNPJ ja cadastrado")


def _commit_unique(db: Session) -> None:
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise Conflict("CNPJ ja cadastrado") from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Falha ao persistir alteracoes")
        raise PersistenceError() from exc


def _get_tenant_or_404(db: Session, tenant_id: str) -> models.Tenant:
    tenant = db.query(models.Tenant).filter(models.Tenant.id == tenant_id).first()
    if not tenant:
        raise NotFound("Municipio nao encontrado")
    return tenant


@router.get("/tenants")
def list_tenants(
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    enforce(current_user, Action.READ, Target(Entity.TENANT))
    tenants = db.query(models.Tenant).order_by(models.Tenant.created_at.desc()).all()
    return [_serialize_tenant(tenant) for tenant in tenants]


@router.post("/tenants", status_code=status.HTTP_201_CREATED)
def create_tenant(
    payload: TenantCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    enforce(current_user, Action.CREATE, Target(Entity.TENANT))
    _validate(payload.name, payload.tax_id)
    tax_id = payload.tax_id.strip()
    _ensure_tax_id_available(db, tax_id)
    tenant = models.Tenant(name=payload.name.strip(), tax_id=tax_id)
    db.add(tenant)
    _commit_unique(db)
    db.refresh(tenant)
    logger.info("municipio criado id=%s", tenant.id)
    return _serialize_tenant(tenant)


@router.patch("/tenants/{tenant_id}")
def update_tenant(
    tenant_id: str,
    payload: TenantUpdate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    tenant = _get_tenant_or_404(db, tenant_id)
    enforce(current_user, Action.UPDATE, Target.tenant(tenant))
    _validate(payload.name, payload.tax_id)
    if payload.name is not None:
        tenant.name = payload.name.strip()
    if payload.tax_id is not None:
        tax_id = payload.tax_id.strip()
        _ensure_tax_id_available(db, tax_id, exclude_id=tenant.id)
        tenant.tax_id = tax_id
    _commit_unique(db)
    db.refresh(tenant)
    return _serialize_tenant(tenant)


@router.delete("/tenants/{tenant_id}")
def delete_tenant(
    tenant_id: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    tenant = _get_tenant_or_404(db, tenant_id)
    enforce(current_user, Action.DELETE, Target.tenant(tenant))
    db.delete(tenant)
    commit_or_rollback(db)
    logger.info("municipio removido id=%s by=%s", tenant_id, current_user.id)
    return {"message": "Municipio removido com sucesso"}

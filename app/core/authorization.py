from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from sqlalchemy.orm import Query

from app.core.errors import Forbidden, NotFound
from app.db import models


class Action(str, Enum):
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"


class Entity(str, Enum):
    TENANT = "tenant"
    PRINCIPAL = "principal"
    QUOTATION = "quotation"
    ACCESS_LOG = "access_log"
    NOTIFICATION = "notification"


NOT_FOUND_MESSAGES = {
    Entity.TENANT: "Municipio nao encontrado",
    Entity.PRINCIPAL: "Usuario nao encontrado",
    Entity.QUOTATION: "Cotacao nao encontrada",
    Entity.ACCESS_LOG: "Log nao encontrado",
    Entity.NOTIFICATION: "Notificacao nao encontrada",
}

USER_MANAGER_ROLES = {models.ROLE_ADMIN, models.ROLE_GESTOR}


@dataclass(frozen=True)
class Target:
    entity: Entity
    tenant_id: Optional[str] = None
    owner_id: Optional[str] = None
    entity_id: Optional[str] = None
    role: Optional[str] = None

    @classmethod
    def tenant(cls, tenant: models.Tenant) -> Target:
        return cls(Entity.TENANT, tenant_id=tenant.id, entity_id=tenant.id)

    @classmethod
    def principal(cls, user: models.User, role: Optional[str] = None) -> Target:
        return cls(Entity.PRINCIPAL, tenant_id=user.tenant_id, entity_id=user.id, role=role)

    @classmethod
    def quotation(cls, quotation: models.Quotation) -> Target:
        return cls(
            Entity.QUOTATION,
            tenant_id=quotation.tenant_id,
            owner_id=quotation.user_id,
            entity_id=quotation.id,
        )


def authorize(principal: models.User, action: Action, target: Target) -> bool:
    if target.entity == Entity.QUOTATION and action == Action.CREATE:
        # quotations always belong to the creator's tenant, so a tenantless root cannot create one
        return principal.tenant_id is not None and target.tenant_id == principal.tenant_id

    if principal.role == models.ROLE_ROOT:
        return True
    if target.entity == Entity.QUOTATION and action == Action.DELETE and target.owner_id == principal.id:
        return True
    if principal.tenant_id is None or target.tenant_id != principal.tenant_id:
        return False

    if target.entity == Entity.TENANT:
        return action == Action.READ

    if target.entity == Entity.PRINCIPAL:
        if target.role == models.ROLE_ROOT:
            return False
        if action == Action.CREATE or (action == Action.UPDATE and target.role is not None):
            # target.role carries the role being granted
            return principal.role in USER_MANAGER_ROLES
        return True

    if target.entity == Entity.QUOTATION:
        return True

    if target.entity in {Entity.ACCESS_LOG, Entity.NOTIFICATION}:
        return action == Action.READ

    return False


def enforce(principal: models.User, action: Action, target: Target) -> None:
    if authorize(principal, action, target):
        return
    hidden = (
        target.entity_id is not None
        and principal.role != models.ROLE_ROOT
        and target.tenant_id != principal.tenant_id
    )
    if hidden:
        raise NotFound(NOT_FOUND_MESSAGES[target.entity])
    raise Forbidden()


def scope_query(query: Query, principal: models.User, tenant_field) -> Query:
    if principal.role == models.ROLE_ROOT:
        return query
    if principal.tenant_id is None:
        raise Forbidden()
    return query.filter(tenant_field == principal.tenant_id)

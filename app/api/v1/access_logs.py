from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.authorization import Action, Entity, Target, enforce, scope_query
from app.core.security import get_current_user
from app.db import models
from app.db.session import get_db

router = APIRouter(tags=["Auditoria"])

MAX_LIMIT = 500


def serialize_access_log(entry: models.AccessLog) -> dict:
    return {
        "id": entry.id,
        "user_id": entry.user_id,
        "tenant_id": entry.tenant_id,
        "endpoint": entry.endpoint,
        "http_method": entry.http_method,
        "client_ip": entry.client_ip,
        "status": entry.status,
        "timestamp": entry.timestamp,
    }


@router.get("/access-logs")
def list_access_logs(
    user_id: Optional[str] = None,
    limit: int = 100,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    enforce(current_user, Action.READ, Target(Entity.ACCESS_LOG, tenant_id=current_user.tenant_id))
    query = scope_query(db.query(models.AccessLog), current_user, models.AccessLog.tenant_id)
    if user_id:
        query = query.filter(models.AccessLog.user_id == user_id)
    limit = max(1, min(limit, MAX_LIMIT))
    entries = query.order_by(models.AccessLog.timestamp.desc()).limit(limit).all()
    return [serialize_access_log(entry) for entry in entries]

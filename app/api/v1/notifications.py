from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.authorization import Action, Entity, Target, enforce, scope_query
from app.core.security import get_current_user
from app.db import models
from app.db.session import get_db

router = APIRouter(tags=["Notificacoes"])


def serialize_notification(notification: models.Notification) -> dict:
    return {
        "id": notification.id,
        "quotation_id": notification.quotation_id,
        "tenant_id": notification.tenant_id,
        "type": notification.type,
        "recipient": notification.recipient,
        "status": notification.status,
        "timestamp": notification.timestamp,
    }


@router.get("/notifications")
def list_notifications(
    quotation_id: Optional[str] = None,
    status: Optional[str] = None,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    enforce(current_user, Action.READ, Target(Entity.NOTIFICATION, tenant_id=current_user.tenant_id))
    query = scope_query(db.query(models.Notification), current_user, models.Notification.tenant_id)
    if quotation_id:
        query = query.filter(models.Notification.quotation_id == quotation_id)
    if status:
        query = query.filter(models.Notification.status == status)
    notifications = query.order_by(models.Notification.timestamp.desc()).all()
    return [serialize_notification(item) for item in notifications]

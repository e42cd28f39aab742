from decimal import Decimal

from fastapi import APIRouter, Depends
from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.authorization import scope_query
from app.core.security import get_current_user
from app.db.session import get_db
from app.db import models

router = APIRouter(tags=["Dashboard"])


@router.get("/dashboard/summary")
def dashboard_summary(
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    quotations = scope_query(db.query(models.Quotation), current_user, models.Quotation.tenant_id)
    by_status = {status: 0 for status in sorted(models.QUOTATION_STATUSES)}
    for status, count in (
        quotations.with_entities(models.Quotation.status, func.count(models.Quotation.id))
        .group_by(models.Quotation.status)
        .all()
    ):
        by_status[status] = count

    total_value = quotations.with_entities(func.sum(models.Quotation.total_price)).scalar()
    average_confidence = quotations.with_entities(func.avg(models.Quotation.analysis_confidence)).scalar()

    principals_total = scope_query(db.query(models.User), current_user, models.User.tenant_id).count()
    notifications_failed = (
        scope_query(db.query(models.Notification), current_user, models.Notification.tenant_id)
        .filter(models.Notification.status == models.NOTIFICATION_FAILED)
        .count()
    )

    summary = {
        "quotations_total": sum(by_status.values()),
        "quotations_by_status": by_status,
        "total_value": float(Decimal(str(total_value or 0)).quantize(Decimal("0.01"))),
        "average_confidence": round(float(average_confidence), 2) if average_confidence is not None else None,
        "principals_total": principals_total,
        "notifications_failed": notifications_failed,
    }
    if current_user.role == models.ROLE_ROOT:
        summary["tenants_total"] = db.query(models.Tenant).count()
    return summary

from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.core.security import get_current_user
from app.db import models
from app.db.session import get_db
from app.quotations import service

router = APIRouter(tags=["Cotacoes"])


class QuotationCreate(BaseModel):
    product: str
    quantity: int
    unit_price: Decimal


class QuotationUpdate(BaseModel):
    status: Optional[str] = None


def _money(value: Optional[Decimal]) -> Optional[float]:
    return float(value) if value is not None else None


def serialize_quotation(quotation: models.Quotation) -> dict:
    return {
        "id": quotation.id,
        "tenant_id": quotation.tenant_id,
        "user_id": quotation.user_id,
        "product": quotation.product,
        "quantity": quotation.quantity,
        "unit_price": _money(quotation.unit_price),
        "total_price": _money(quotation.total_price),
        "status": quotation.status,
        "average_market_price": _money(quotation.average_market_price),
        "price_range": {
            "min": _money(quotation.price_range_min),
            "max": _money(quotation.price_range_max),
        },
        "market_analysis": quotation.market_analysis,
        "recommendations": quotation.recommendations or [],
        "analysis_confidence": _money(quotation.analysis_confidence),
        "price_report": quotation.price_report,
        "webhook_sent": bool(quotation.webhook_sent),
        "created_at": quotation.created_at,
    }


@router.get("/quotations")
def list_quotations(
    status: Optional[str] = None,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    quotations = service.list_quotations(db, current_user, status=status)
    return [serialize_quotation(item) for item in quotations]


@router.post("/quotations", status_code=status.HTTP_201_CREATED)
def create_quotation(
    payload: QuotationCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    quotation = service.create_quotation(db, current_user, payload.model_dump())
    return serialize_quotation(quotation)


@router.get("/quotations/{quotation_id}")
def get_quotation(
    quotation_id: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return serialize_quotation(service.get_quotation(db, current_user, quotation_id))


@router.patch("/quotations/{quotation_id}")
def update_quotation(
    quotation_id: str,
    payload: QuotationUpdate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    quotation = service.update_quotation(db, current_user, quotation_id, payload.model_dump(exclude_unset=True))
    return serialize_quotation(quotation)


@router.delete("/quotations/{quotation_id}")
def delete_quotation(
    quotation_id: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    service.delete_quotation(db, current_user, quotation_id)
    return {"message": "Cotacao removida com sucesso"}

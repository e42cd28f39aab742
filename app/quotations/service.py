import logging
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.authorization import Action, Entity, Target, enforce, scope_query
from app.core.errors import NotFound, ValidationError
from app.db import models
from app.db.session import commit_or_rollback
from app.notifications.webhook import build_new_quotation_payload, build_status_payload, dispatch
from app.pricing.analysis import analyze_prices
from app.pricing.report import generate_quotation_report

logger = logging.getLogger("cotacao.quotations")

PRODUCT_MAX_LENGTH = 500
CENT = Decimal("0.01")
MAX_AMOUNT = Decimal("99999999.99")
DEFAULT_TENANT_NAME = "Municipio"


def _to_cents(value: Any) -> Decimal:
    amount = Decimal(str(value))
    # cap before quantize; huge provider figures exceed the decimal context precision
    if amount > MAX_AMOUNT:
        return MAX_AMOUNT
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def validate_quotation_input(product: Any, quantity: Any, unit_price: Any) -> tuple[str, int, Decimal]:
    errors: list[dict] = []

    cleaned_product = product.strip() if isinstance(product, str) else ""
    if not cleaned_product:
        errors.append({"field": "product", "message": "Produto obrigatorio"})
    elif len(cleaned_product) > PRODUCT_MAX_LENGTH:
        errors.append({"field": "product", "message": f"Produto deve ter no maximo {PRODUCT_MAX_LENGTH} caracteres"})

    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        errors.append({"field": "quantity", "message": "Quantidade deve ser um inteiro maior ou igual a 1"})

    price: Optional[Decimal] = None
    try:
        if isinstance(unit_price, bool) or unit_price is None:
            raise InvalidOperation
        price = Decimal(str(unit_price))
        if not price.is_finite():
            raise InvalidOperation
        price = price.quantize(CENT, rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError):
        price = None
    if price is None or price <= 0:
        errors.append({"field": "unit_price", "message": "Preco unitario deve ser maior que zero"})
    elif price > MAX_AMOUNT:
        errors.append({"field": "unit_price", "message": "Preco unitario acima do limite permitido"})

    if not errors and compute_total_price(quantity, price) > MAX_AMOUNT:
        errors.append({"field": "quantity", "message": "Valor total acima do limite permitido"})

    if errors:
        raise ValidationError(errors)
    return cleaned_product, quantity, price


def validate_status(status: Any) -> str:
    if not isinstance(status, str) or status not in models.QUOTATION_STATUSES:
        allowed = ", ".join(sorted(models.QUOTATION_STATUSES))
        raise ValidationError.single("status", f"Status invalido. Use: {allowed}")
    return status


def compute_total_price(quantity: int, unit_price: Decimal) -> Decimal:
    return (Decimal(quantity) * unit_price).quantize(CENT, rounding=ROUND_HALF_UP)


def _get_quotation_or_404(db: Session, quotation_id: str) -> models.Quotation:
    quotation = db.query(models.Quotation).filter(models.Quotation.id == quotation_id).first()
    if not quotation:
        raise NotFound("Cotacao nao encontrada")
    return quotation


def record_notification(
    db: Session,
    quotation: Optional[models.Quotation],
    tenant_id: Optional[str],
    notification_type: str,
    recipient: str,
    delivered: bool,
) -> models.Notification:
    notification = models.Notification(
        quotation_id=quotation.id if quotation else None,
        tenant_id=tenant_id,
        type=notification_type,
        recipient=recipient,
        status=models.NOTIFICATION_SENT if delivered else models.NOTIFICATION_FAILED,
    )
    db.add(notification)
    commit_or_rollback(db)
    return notification


def _mark_webhook_sent(db: Session, quotation: models.Quotation) -> None:
    try:
        quotation.webhook_sent = True
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Falha ao marcar webhook enviado cotacao_id=%s", quotation.id)


def create_quotation(db: Session, principal: models.User, data: dict) -> models.Quotation:
    enforce(principal, Action.CREATE, Target(Entity.QUOTATION, tenant_id=principal.tenant_id))
    product, quantity, unit_price = validate_quotation_input(
        data.get("product"), data.get("quantity"), data.get("unit_price")
    )
    total_price = compute_total_price(quantity, unit_price)

    logger.info("Iniciando analise de precos product=%r tenant_id=%s", product[:60], principal.tenant_id)
    analysis = analyze_prices(product, quantity, unit_price)
    tenant = db.query(models.Tenant).filter(models.Tenant.id == principal.tenant_id).first()
    report = generate_quotation_report(
        product,
        quantity,
        unit_price,
        analysis,
        tenant.name if tenant else DEFAULT_TENANT_NAME,
    )

    quotation = models.Quotation(
        tenant_id=principal.tenant_id,
        user_id=principal.id,
        product=product,
        quantity=quantity,
        unit_price=unit_price,
        total_price=total_price,
        status=models.QUOTATION_PENDING,
        average_market_price=_to_cents(analysis.averagePrice),
        price_range_min=_to_cents(analysis.priceRange.min),
        price_range_max=_to_cents(analysis.priceRange.max),
        market_analysis=analysis.marketAnalysis,
        recommendations=list(analysis.recommendations),
        analysis_confidence=_to_cents(analysis.confidence),
        price_report=report,
        webhook_sent=False,
    )
    db.add(quotation)
    commit_or_rollback(db)
    db.refresh(quotation)

    delivered = dispatch(build_new_quotation_payload(quotation, analysis))
    if delivered:
        _mark_webhook_sent(db, quotation)
    record_notification(
        db,
        quotation,
        quotation.tenant_id,
        models.NOTIFICATION_NEW_QUOTATION,
        principal.email,
        delivered,
    )
    db.refresh(quotation)
    logger.info("Cotacao criada id=%s webhook_sent=%s", quotation.id, quotation.webhook_sent)
    return quotation


def update_quotation(db: Session, principal: models.User, quotation_id: str, data: dict) -> models.Quotation:
    """
    Atualizacao parcial; hoje apenas o status e editavel.
    Mudanca efetiva de status dispara um webhook e grava uma Notification com o resultado.
    """
    quotation = _get_quotation_or_404(db, quotation_id)
    enforce(principal, Action.UPDATE, Target.quotation(quotation))

    previous_status = quotation.status
    new_status = data.get("status")
    if new_status is not None:
        quotation.status = validate_status(new_status)
    commit_or_rollback(db)
    db.refresh(quotation)

    if new_status is not None and new_status != previous_status:
        delivered = dispatch(build_status_payload(quotation))
        record_notification(
            db,
            quotation,
            quotation.tenant_id,
            models.NOTIFICATION_STATUS_UPDATED,
            principal.email,
            delivered,
        )
        logger.info(
            "Status da cotacao atualizado id=%s %s->%s webhook=%s",
            quotation.id,
            previous_status,
            quotation.status,
            delivered,
        )
    return quotation


def get_quotation(db: Session, principal: models.User, quotation_id: str) -> models.Quotation:
    quotation = _get_quotation_or_404(db, quotation_id)
    enforce(principal, Action.READ, Target.quotation(quotation))
    return quotation


def delete_quotation(db: Session, principal: models.User, quotation_id: str) -> None:
    quotation = _get_quotation_or_404(db, quotation_id)
    enforce(principal, Action.DELETE, Target.quotation(quotation))
    db.delete(quotation)
    commit_or_rollback(db)


def list_quotations(
    db: Session,
    principal: models.User,
    status: Optional[str] = None,
) -> list[models.Quotation]:
    query = scope_query(db.query(models.Quotation), principal, models.Quotation.tenant_id)
    if status:
        query = query.filter(models.Quotation.status == validate_status(status))
    return query.order_by(models.Quotation.created_at.desc()).all()

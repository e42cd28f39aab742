import hashlib
import hmac
import json
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

import requests

from app.core.config import settings
from app.db import models
from app.pricing.schemas import PriceAnalysis

logger = logging.getLogger("cotacao.webhook")

SIGNATURE_HEADER = "X-Signature"
SIGNATURE_PREFIX = "sha256="
EVENT_NEW_QUOTATION = "nova_cotacao"
EVENT_STATUS_UPDATED = "status_atualizado"


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    raise TypeError(f"Tipo nao serializavel: {type(value).__name__}")


def encode_payload(payload: dict) -> bytes:
    return json.dumps(payload, default=_json_default, ensure_ascii=False, separators=(",", ":")).encode("utf-8")


def sign_payload(body: bytes, secret: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_signature(body: bytes, signature_header: Optional[str], secret: str) -> bool:
    if not signature_header:
        logger.warning("Missing signature header")
        return False
    if not signature_header.startswith(SIGNATURE_PREFIX):
        logger.warning("Invalid signature format")
        return False
    return hmac.compare_digest(sign_payload(body, secret), signature_header)


def build_new_quotation_payload(quotation: models.Quotation, analysis: PriceAnalysis) -> dict:
    return {
        "evento": EVENT_NEW_QUOTATION,
        "cotacao_id": quotation.id,
        "cliente_id": quotation.tenant_id,
        "usuario_id": quotation.user_id,
        "produto": quotation.product,
        "quantidade": quotation.quantity,
        "preco_unitario": quotation.unit_price,
        "preco_total": quotation.total_price,
        "preco_medio_mercado": analysis.averagePrice,
        "faixa_preco_min": analysis.priceRange.min,
        "faixa_preco_max": analysis.priceRange.max,
        "analise_mercado": analysis.marketAnalysis,
        "recomendacoes": analysis.recommendations,
        "confianca_analise": analysis.confidence,
        "status": quotation.status,
        "timestamp": quotation.created_at,
    }


def build_status_payload(quotation: models.Quotation) -> dict:
    return {
        "evento": EVENT_STATUS_UPDATED,
        "cotacao_id": quotation.id,
        "cliente_id": quotation.tenant_id,
        "usuario_id": quotation.user_id,
        "produto": quotation.product,
        "quantidade": quotation.quantity,
        "preco_total": quotation.total_price,
        "status": quotation.status,
        "timestamp": datetime.utcnow(),
    }


def dispatch(payload: dict) -> bool:
    url = settings.WEBHOOK_URL
    if not url:
        logger.warning("WEBHOOK_URL not configured")
        return False
    try:
        body = encode_payload(payload)
        headers = {"Content-Type": "application/json"}
        if settings.WEBHOOK_API_KEY:
            headers["X-API-Key"] = settings.WEBHOOK_API_KEY
        if settings.WEBHOOK_SECRET:
            headers[SIGNATURE_HEADER] = sign_payload(body, settings.WEBHOOK_SECRET)
        resp = requests.post(url, data=body, headers=headers, timeout=settings.WEBHOOK_TIMEOUT_SECONDS)
    except Exception as exc:
        logger.warning("webhook request failed evento=%s: %s", payload.get("evento"), exc)
        return False
    if not 200 <= resp.status_code < 300:
        logger.warning("webhook status_code=%s evento=%s", resp.status_code, payload.get("evento"))
        return False
    logger.info("webhook delivered evento=%s cotacao_id=%s", payload.get("evento"), payload.get("cotacao_id"))
    return True

import logging

from fastapi import APIRouter, Header, Request

from app.core.config import settings
from app.core.errors import InvalidToken
from app.notifications.webhook import verify_signature

router = APIRouter(tags=["Webhook"])
logger = logging.getLogger("cotacao.webhook")


@router.post("/webhook/cotacao")
async def receive_quotation_callback(
    request: Request,
    x_signature: str | None = Header(default=None),
):
    """
    Recebe callbacks do sistema de workflow.
    Com WEBHOOK_SECRET configurado o corpo precisa vir assinado em X-Signature.
    """
    body = await request.body()
    if settings.WEBHOOK_SECRET and not verify_signature(body, x_signature, settings.WEBHOOK_SECRET):
        logger.warning("webhook recebido com assinatura invalida")
        raise InvalidToken()
    logger.info("webhook recebido bytes=%s", len(body))
    return {"status": "success"}
